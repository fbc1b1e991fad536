"""Tests for migrating legacy inline-recurrence tasks."""
from datetime import date

import pytest

from recurring_planner.errors import UnauthorizedError, ValidationError
from recurring_planner.models import Task
from recurring_planner.services.legacy_rules import convert_legacy_recurrence
from recurring_planner.services.task_store import InstanceFilter
from recurring_planner.utils.metrics import metrics_collector

from tests.factories import USER_ID, legacy_task

START = date(2026, 1, 5)


async def seed_weekly_with_children(session):
    legacy = legacy_task({"type": "weekly", "daysOfWeek": [1]}, START)
    session.add(legacy)
    await session.flush()
    children = [
        Task(
            user_id=USER_ID,
            title="Water plants",
            scheduled_date=date(2026, 1, 5),
            completed=True,
            is_recurring_instance=True,
            recurring_parent_id=legacy.id,
        ),
        Task(
            user_id=USER_ID,
            title="Water plants",
            scheduled_date=date(2026, 1, 12),
            is_recurring_instance=True,
            recurring_parent_id=legacy.id,
        ),
    ]
    session.add_all(children)
    await session.commit()
    return legacy, children


@pytest.fixture
def clock(clock):
    clock.today = date(2026, 1, 10)
    return clock


@pytest.mark.parametrize(
    "legacy, expected",
    [
        ({"type": "monthly", "nthWeekday": {"n": 2, "weekday": 2}},
         {"type": "nth_weekday", "interval": 1, "nth": 2, "weekday": 2}),
        ({"type": "monthly", "specificDatesOfMonth": [1, 15]},
         {"type": "specific_dates", "interval": 1, "dates_of_month": [1, 15]}),
        ({"type": "monthly", "dayOfMonth": None},
         {"type": "monthly_by_day", "interval": 1, "day_of_month": 5}),
        ({"type": "yearly", "interval": 2},
         {"type": "yearly", "interval": 2, "month_of_year": 1, "day_of_month": 5}),
        ({"type": "afterCompletion", "daysAfterCompletion": 42},
         {"type": "after_completion", "days_after_completion": 42}),
    ],
)
def test_convert_legacy_recurrence(legacy, expected):
    assert convert_legacy_recurrence(legacy, START) == expected


def test_custom_legacy_rule_is_rejected():
    with pytest.raises(ValidationError):
        convert_legacy_recurrence({"type": "custom"}, START)


async def test_migration_repoints_children_and_fills_window(service, session):
    legacy, children = await seed_weekly_with_children(session)

    result = await service.migrate_legacy_item(legacy.id, USER_ID)

    assert result.tasks_processed == 1
    assert result.patterns_created == 1
    assert result.instances_updated == 2
    # Mondays from today (2026-01-10) through 2026-04-06; 2026-01-12 is already a child
    assert result.instances_generated == 12
    assert result.errors == []

    [pattern] = await service.list_patterns(USER_ID)
    assert pattern.migrated_from_task_id == legacy.id
    assert pattern.recurrence == {"type": "weekly", "interval": 1, "days_of_week": [1]}
    assert pattern.generated_until == date(2026, 4, 10)

    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert len(instances) == 14
    assert instances[0].id == children[0].id and instances[0].completed
    assert all(not task.is_recurring_instance and task.recurring_parent_id is None for task in instances)

    migrated = await session.get(Task, legacy.id)
    assert migrated.deleted_at is not None
    assert migrated.migrated_to_pattern_id == pattern.id
    assert metrics_collector.get_metrics()["counters"]["patterns_migrated_total"] == 1


async def test_migration_is_idempotent(service, session):
    legacy, _ = await seed_weekly_with_children(session)
    await service.migrate_legacy_item(legacy.id, USER_ID)

    again = await service.migrate_legacy_item(legacy.id, USER_ID)

    assert again.tasks_processed == 0
    assert again.patterns_created == 0
    assert len(await service.list_patterns(USER_ID)) == 1


async def test_dry_run_writes_nothing(service, session):
    legacy, _ = await seed_weekly_with_children(session)

    result = await service.migrate_legacy_item(legacy.id, USER_ID, dry_run=True)

    assert result.dry_run
    assert result.patterns_created == 1
    assert result.instances_generated == 12
    assert result.instances_updated == 2
    assert await service.list_patterns(USER_ID) == []
    untouched = await session.get(Task, legacy.id)
    assert untouched.deleted_at is None


async def test_after_completion_legacy_keeps_pending_child_active(service, session):
    legacy = legacy_task({"type": "afterCompletion", "daysAfterCompletion": 14}, START)
    session.add(legacy)
    await session.flush()
    pending = Task(
        user_id=USER_ID,
        title="Water plants",
        scheduled_date=date(2026, 1, 19),
        is_recurring_instance=True,
        recurring_parent_id=legacy.id,
    )
    session.add(pending)
    await session.commit()

    result = await service.migrate_legacy_item(legacy.id, USER_ID)

    [pattern] = await service.list_patterns(USER_ID)
    assert pattern.active_instance_id == pending.id
    assert result.instances_generated == 0
    assert result.instances_updated == 1


async def test_other_users_task_is_unauthorized(service, session):
    legacy = legacy_task({"type": "daily"}, START, user_id="someone-else")
    session.add(legacy)
    await session.commit()

    with pytest.raises(UnauthorizedError):
        await service.migrate_legacy_item(legacy.id, USER_ID)


async def test_migrate_all_collects_errors_and_continues(service, session):
    # 8 occurrences 2026-01-05 .. 2026-01-12, of which 01-10 .. 01-12 are not past
    good = legacy_task({"type": "daily", "endCondition": {"type": "occurrences", "maxOccurrences": 8}}, START)
    bad = legacy_task({"type": "custom"}, START, title="Odd schedule")
    other_user = legacy_task({"type": "daily"}, START, user_id="user-2")
    session.add_all([good, bad, other_user])
    await session.commit()

    result = await service.migrate_all_legacy_items(USER_ID)

    assert result.tasks_processed == 1
    assert result.patterns_created == 1
    assert result.instances_generated == 3
    assert len(result.errors) == 1
    assert result.errors[0].startswith(f"Task {bad.id}:")
    assert await service.list_patterns("user-2") == []


async def test_past_legacy_occurrences_are_not_materialized(service, session, clock):
    legacy = legacy_task({"type": "daily"}, date(2025, 1, 1))
    session.add(legacy)
    await session.commit()

    dry = await service.migrate_legacy_item(legacy.id, USER_ID, dry_run=True)
    result = await service.migrate_legacy_item(legacy.id, USER_ID)

    # 2026-01-10 .. 2026-04-10
    assert dry.instances_generated == 91
    assert result.instances_generated == 91
    [pattern] = await service.list_patterns(USER_ID)
    assert pattern.start_date == date(2025, 1, 1)
    instances = await service.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
    assert len(instances) == 91
    assert instances[0].scheduled_date == clock.today
    assert not any(task.scheduled_date < clock.today for task in instances)
