"""Conversion of legacy inline recurrence documents into pattern rules.

Legacy tasks carry their rule as a camelCase JSON document::

    {"type": "monthly", "interval": 1, "daysOfWeek": [], "dayOfMonth": null,
     "monthOfYear": null, "nthWeekday": {"n": 2, "weekday": 2},
     "specificDatesOfMonth": null, "daysAfterCompletion": null,
     "endCondition": {"type": "date", "endDate": "2026-06-30", "maxOccurrences": null},
     "exceptions": ["2026-03-10"]}
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from recurring_planner.errors import ValidationError
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.schemas.recurrence import parse_end_condition, parse_recurrence
from recurring_planner.utils.dates import to_date, to_iso_list, to_date_set


def planner_weekday(day: date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def convert_legacy_recurrence(legacy: Dict[str, Any], start_date: date) -> Dict[str, Any]:
    """Map a legacy rule document onto a recurrence rule document.

    Raises:
        ValidationError: for `custom` rules and unknown types
    """
    legacy_type = legacy.get("type")
    interval = legacy.get("interval") or 1

    if legacy_type == "daily":
        return {"type": "daily", "interval": interval}

    if legacy_type == "weekly":
        days = legacy.get("daysOfWeek") or [planner_weekday(start_date)]
        return {"type": "weekly", "interval": interval, "days_of_week": list(days)}

    if legacy_type == "monthly":
        nth = legacy.get("nthWeekday")
        if nth:
            return {
                "type": "nth_weekday",
                "interval": interval,
                "nth": nth.get("n"),
                "weekday": nth.get("weekday"),
            }
        specific = legacy.get("specificDatesOfMonth")
        if specific:
            return {"type": "specific_dates", "interval": interval, "dates_of_month": list(specific)}
        return {
            "type": "monthly_by_day",
            "interval": interval,
            "day_of_month": legacy.get("dayOfMonth") or start_date.day,
        }

    if legacy_type == "yearly":
        return {
            "type": "yearly",
            "interval": interval,
            "month_of_year": legacy.get("monthOfYear") or start_date.month,
            "day_of_month": legacy.get("dayOfMonth") or start_date.day,
        }

    if legacy_type == "afterCompletion":
        return {
            "type": "after_completion",
            "days_after_completion": legacy.get("daysAfterCompletion"),
        }

    if legacy_type == "custom":
        raise ValidationError("Custom legacy recurrence cannot be migrated", details={"type": legacy_type})

    raise ValidationError(f"Unknown legacy recurrence type: {legacy_type}", details={"type": legacy_type})


def convert_legacy_end_condition(legacy: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    legacy = legacy or {}
    end_type = legacy.get("type") or "never"

    if end_type == "date":
        end_date = to_date(legacy.get("endDate"))
        if end_date is None:
            raise ValidationError("Legacy end condition of type 'date' has no endDate")
        return {"type": "on_date", "end_date": end_date.isoformat()}

    if end_type == "occurrences":
        max_occurrences = legacy.get("maxOccurrences")
        if not max_occurrences:
            raise ValidationError("Legacy end condition of type 'occurrences' has no maxOccurrences")
        return {"type": "after_occurrences", "max_occurrences": max_occurrences}

    if end_type == "never":
        return {"type": "never"}

    raise ValidationError(f"Unknown legacy end condition type: {end_type}")


def legacy_start_date(task: Task, today: date) -> date:
    return task.scheduled_date or today


def convert_legacy_task(task: Task, today: date) -> Tuple[Dict[str, Any], Dict[str, Any], List[str], date]:
    """Return (recurrence, end_condition, exception_dates, start_date) for a legacy task.

    The converted documents are validated against the rule schemas so a
    malformed legacy record fails here, before anything is written.
    """
    if not task.recurrence:
        raise ValidationError("Task has no inline recurrence", details={"task_id": task.id})

    start_date = legacy_start_date(task, today)
    recurrence = convert_legacy_recurrence(task.recurrence, start_date)
    end_condition = convert_legacy_end_condition(task.recurrence.get("endCondition"))
    exceptions = to_iso_list(to_date_set(task.recurrence.get("exceptions")))

    try:
        recurrence = parse_recurrence(recurrence).model_dump(mode="json")
        end_condition = parse_end_condition(end_condition).model_dump(mode="json")
    except PydanticValidationError as e:
        raise ValidationError(
            "Legacy recurrence is malformed",
            details={"task_id": task.id, "errors": e.errors(include_url=False, include_context=False)},
        ) from e

    return recurrence, end_condition, exceptions, start_date


def pattern_from_legacy_task(task: Task, today: date) -> RecurringPattern:
    """Build an unsaved pattern equivalent to a legacy recurring task."""
    recurrence, end_condition, exceptions, start_date = convert_legacy_task(task, today)
    return RecurringPattern(
        user_id=task.user_id,
        title=task.title,
        description=task.description,
        category_id=task.category_id,
        priority=task.priority,
        start_time=task.start_time,
        duration=task.duration,
        recurrence=recurrence,
        end_condition=end_condition,
        exception_dates=exceptions,
        start_date=start_date,
        generated_until=start_date,
        migrated_from_task_id=task.id,
    )
