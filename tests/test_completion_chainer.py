"""Tests for after-completion chaining."""
from datetime import date

import pytest

from recurring_planner.errors import ConfigurationError, ValidationError
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.services.task_store import InstanceFilter

from tests.factories import USER_ID


def after_completion(days=3, **overrides):
    data = {
        "title": "Replace filter",
        "recurrence": {"type": "after_completion", "days_after_completion": days},
        "start_date": "2026-01-05",
    }
    data.update(overrides)
    return data


async def test_completion_schedules_next_instance(service):
    pattern = await service.create_pattern(USER_ID, after_completion())
    first_id = pattern.active_instance_id

    task, next_instance = await service.complete_instance(first_id, USER_ID, date(2026, 1, 7))

    assert task.completed and task.completed_at is not None
    assert next_instance.scheduled_date == date(2026, 1, 10)
    assert pattern.active_instance_id == next_instance.id
    assert next_instance.id != first_id

    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert [t.scheduled_date for t in instances] == [date(2026, 1, 5), date(2026, 1, 10)]


async def test_stale_completion_is_rejected(service):
    pattern = await service.create_pattern(USER_ID, after_completion())
    first_id = pattern.active_instance_id
    await service.complete_instance(first_id, USER_ID, date(2026, 1, 7))

    with pytest.raises(ValidationError):
        await service.on_instance_completed(pattern.id, first_id, USER_ID, date(2026, 1, 8))

    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert len(instances) == 2


async def test_completing_twice_is_rejected(service):
    pattern = await service.create_pattern(USER_ID, after_completion())
    await service.complete_instance(pattern.active_instance_id, USER_ID, date(2026, 1, 7))
    completed_id = (await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id)))[0].id

    with pytest.raises(ValidationError):
        await service.complete_instance(completed_id, USER_ID)


async def test_calendar_pattern_completion_does_not_chain(service):
    pattern = await service.create_pattern(
        USER_ID, {"title": "Stretch", "recurrence": {"type": "daily", "interval": 1}, "start_date": "2026-01-01"}
    )
    [first] = await service.tasks.instances_where(
        InstanceFilter(pattern_id=pattern.id, scheduled_to=date(2026, 1, 1))
    )

    task, next_instance = await service.complete_instance(first.id, USER_ID)

    assert task.completed
    assert next_instance is None
    assert await service.on_instance_completed(pattern.id, first.id, USER_ID) is None


async def test_missing_days_after_completion_is_a_configuration_error(service, session):
    pattern = RecurringPattern(
        user_id=USER_ID,
        title="Legacy chore",
        recurrence={"type": "after_completion", "days_after_completion": None},
        start_date=date(2026, 1, 5),
        generated_until=date(2026, 1, 5),
    )
    session.add(pattern)
    await session.flush()
    task = Task(user_id=USER_ID, title="Legacy chore", scheduled_date=date(2026, 1, 5), recurring_pattern_id=pattern.id)
    session.add(task)
    await session.flush()
    pattern.active_instance_id = task.id
    session.add(pattern)
    await session.commit()
    task_id = task.id

    with pytest.raises(ConfigurationError):
        await service.complete_instance(task_id, USER_ID, date(2026, 1, 6))

    reloaded = await session.get(Task, task_id)
    assert reloaded.completed is False


async def test_end_date_stops_the_chain(service):
    pattern = await service.create_pattern(
        USER_ID, after_completion(end_condition={"type": "on_date", "end_date": "2026-01-09"})
    )

    _, next_instance = await service.complete_instance(pattern.active_instance_id, USER_ID, date(2026, 1, 7))

    assert next_instance is None
    assert pattern.active_instance_id is None


async def test_occurrence_limit_stops_the_chain(service):
    pattern = await service.create_pattern(
        USER_ID, after_completion(end_condition={"type": "after_occurrences", "max_occurrences": 2})
    )

    _, second = await service.complete_instance(pattern.active_instance_id, USER_ID, date(2026, 1, 7))
    _, third = await service.complete_instance(second.id, USER_ID, date(2026, 1, 11))

    assert second.scheduled_date == date(2026, 1, 10)
    assert third is None
