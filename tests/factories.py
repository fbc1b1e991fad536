"""Builders for test data."""
from datetime import date

from recurring_planner.models import RecurringPattern, Task

USER_ID = "user-1"


class FixedClock:
    """Callable returning a settable 'today'."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def make_pattern(recurrence, start_date, end_condition=None, exception_dates=(), **fields):
    """Unsaved pattern for pure generator tests."""
    return RecurringPattern(
        user_id=fields.pop("user_id", USER_ID),
        title=fields.pop("title", "Standup"),
        recurrence=recurrence,
        end_condition=end_condition or {"type": "never"},
        exception_dates=[d.isoformat() for d in exception_dates],
        start_date=start_date,
        generated_until=start_date,
        **fields,
    )


def legacy_task(recurrence, scheduled_date, **fields):
    """Task carrying a legacy inline recurrence document."""
    document = {
        "interval": 1,
        "daysOfWeek": [],
        "dayOfMonth": None,
        "monthOfYear": None,
        "endCondition": {"type": "never", "endDate": None, "maxOccurrences": None},
        "exceptions": [],
    }
    document.update(recurrence)
    return Task(
        user_id=fields.pop("user_id", USER_ID),
        title=fields.pop("title", "Water plants"),
        scheduled_date=scheduled_date,
        recurrence=document,
        **fields,
    )
