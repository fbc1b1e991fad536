"""Tests for window extension and the instance materializer."""
from datetime import date

from sqlmodel import select

from recurring_planner.models import Task
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.services.task_store import InstanceFilter, TaskStore
from recurring_planner.services.window_manager import PatternWindow, WindowManager
from recurring_planner.utils.metrics import metrics_collector

from tests.factories import USER_ID


DAILY = {
    "title": "Journal",
    "recurrence": {"type": "daily", "interval": 1},
    "start_date": "2026-01-01",
}


class FlakyTaskStore(TaskStore):
    """Fails to write the instance for one date."""

    def __init__(self, session, fail_on: date):
        super().__init__(session)
        self.fail_on = fail_on

    async def create_instance(self, template, scheduled_date, pattern_id, user_id):
        if scheduled_date == self.fail_on:
            raise RuntimeError("disk full")
        return await super().create_instance(template, scheduled_date, pattern_id, user_id)


async def count_instances(session, pattern_id):
    result = await session.exec(
        select(Task).where(Task.recurring_pattern_id == pattern_id).where(Task.deleted_at == None)  # noqa: E711
    )
    return len(result.all())


def test_pattern_window_extension_range():
    window = PatternWindow(pattern_id="p", generated_until=date(2026, 4, 1))
    assert window.covers(date(2026, 4, 1))
    assert window.extension_for(date(2026, 3, 1), 90) is None
    assert window.extension_for(date(2026, 5, 1), 90) == (date(2026, 4, 2), date(2026, 7, 30))

    chained = PatternWindow(pattern_id="p", generated_until=date(2026, 1, 1), chained=True, active_instance_id=3)
    assert chained.has_active_instance
    assert chained.extension_for(date(2026, 5, 1), 90) is None


async def test_create_materializes_initial_window(service, session):
    pattern = await service.create_pattern(USER_ID, DAILY)

    assert pattern.generated_until == date(2026, 4, 1)
    assert await count_instances(session, pattern.id) == 91
    assert metrics_collector.get_metrics()["counters"]["instances_created_total"] == 91


async def test_ensure_is_noop_when_covered(service, session):
    pattern = await service.create_pattern(USER_ID, DAILY)

    created = await service.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 3, 1))

    assert created == []
    assert pattern.generated_until == date(2026, 4, 1)
    assert await count_instances(session, pattern.id) == 91


async def test_ensure_extends_past_target_by_lookahead(service, session):
    pattern = await service.create_pattern(USER_ID, DAILY)

    created = await service.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 5, 1))

    assert created[0].scheduled_date == date(2026, 4, 2)
    assert created[-1].scheduled_date == date(2026, 7, 30)
    assert len(created) == 120
    refreshed = await service.get_pattern(pattern.id, USER_ID)
    assert refreshed.generated_until == date(2026, 7, 30)
    assert await count_instances(session, pattern.id) == 211


async def test_watermark_advances_despite_partial_failure(service, session):
    pattern = await service.create_pattern(USER_ID, DAILY)
    flaky = FlakyTaskStore(session, fail_on=date(2026, 4, 10))
    manager = WindowManager(PatternStore(session), InstanceMaterializer(flaky))

    created = await manager.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 5, 1))

    assert len(created) == 119
    assert date(2026, 4, 10) not in {task.scheduled_date for task in created}
    assert pattern.generated_until == date(2026, 7, 30)
    assert metrics_collector.get_metrics()["counters"]["instance_failures_total"] == 1

    # Failed dates are not retried on the next extension
    again = await manager.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 7, 1))
    assert again == []


async def test_after_completion_pattern_is_not_extended(service, session):
    pattern = await service.create_pattern(
        USER_ID,
        {
            "title": "Haircut",
            "recurrence": {"type": "after_completion", "days_after_completion": 42},
            "start_date": "2026-01-05",
        },
    )

    created = await service.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 6, 1))

    assert created == []
    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert [task.id for task in instances] == [pattern.active_instance_id]
    assert instances[0].scheduled_date == date(2026, 1, 5)


async def test_materializer_skips_held_dates(service, session):
    pattern = await service.create_pattern(
        USER_ID,
        {
            "title": "Review",
            "recurrence": {"type": "weekly", "interval": 1, "days_of_week": [1]},
            "start_date": "2026-01-05",
        },
    )
    materializer = InstanceMaterializer(TaskStore(session))

    created = await materializer.materialize(
        pattern, date(2026, 1, 1), date(2026, 1, 31), skip_dates={date(2026, 1, 5), date(2026, 1, 19)}
    )

    assert [task.scheduled_date for task in created] == [date(2026, 1, 12), date(2026, 1, 26)]
    assert all(task.recurring_pattern_id == pattern.id for task in created)


async def test_ensure_never_materializes_past_the_end_date(service, session):
    pattern = await service.create_pattern(
        USER_ID, dict(DAILY, end_condition={"type": "on_date", "end_date": "2026-02-15"})
    )

    created = await service.ensure_instances_for_date(pattern.id, USER_ID, date(2026, 5, 1))

    assert created == []
    assert pattern.generated_until == date(2026, 7, 30)
    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert len(instances) == 46
    assert instances[-1].scheduled_date == date(2026, 2, 15)
