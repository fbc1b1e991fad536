"""Occurrence date generation for recurring patterns.

Everything here is pure: dates in, dates out. Calendar rules are expanded
with `dateutil.rrule`, which skips days a month or year does not have
(the 31st in short months, Feb 29 outside leap years, a missing 5th
weekday) and stops at its `until` bound, or at the last
representable year for a rule that never qualifies.
"""
from datetime import date, datetime, time, timedelta
from itertools import islice
from typing import Iterable, Iterator, List, Optional, Set

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, FR, MO, SA, SU, TH, TU, WE, rrule

from recurring_planner.schemas.recurrence import (
    AfterCompletionRule,
    DailyRule,
    EndCondition,
    EndsAfterOccurrences,
    EndsOnDate,
    MonthlyByDayRule,
    NeverEnds,
    NthWeekdayRule,
    RecurrenceRule,
    SpecificDatesRule,
    WeeklyRule,
    YearlyRule,
)
from recurring_planner.schemas.pattern import OccurrencePreview
from recurring_planner.services.legacy_rules import pattern_from_legacy_task

# Upper bound for open-ended searches
SEARCH_LIMIT = date(9999, 1, 1)

# Indexed by planner weekday, 0=Sunday
WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)


def nth_weekday_of_month(year: int, month: int, nth: int, weekday: int) -> Optional[date]:
    """
    Date of the nth weekday in a month.

    Args:
        year: Calendar year
        month: Calendar month 1-12
        nth: 1-5 for first through fifth, -1 for last
        weekday: 0=Sunday .. 6=Saturday

    Returns:
        The date, or None when the month has no such occurrence
    """
    first = date(year, month, 1)
    if nth == -1:
        return first + relativedelta(day=31, weekday=WEEKDAYS[weekday](-1))
    found = first + relativedelta(weekday=WEEKDAYS[weekday](nth))
    if found.month != month:
        return None
    return found


def _as_datetime(day: date) -> datetime:
    return datetime.combine(day, time())


def build_rrule(rule: RecurrenceRule, anchor: date, until: date) -> rrule:
    """The dateutil rule equivalent to a calendar recurrence rule."""
    if isinstance(rule, AfterCompletionRule):
        raise TypeError("After-completion rules have no calendar expansion")
    common = dict(interval=rule.interval, dtstart=_as_datetime(anchor), until=_as_datetime(until), wkst=SU)

    if isinstance(rule, DailyRule):
        return rrule(DAILY, **common)
    if isinstance(rule, WeeklyRule):
        return rrule(WEEKLY, byweekday=[WEEKDAYS[day] for day in rule.days_of_week], **common)
    if isinstance(rule, MonthlyByDayRule):
        return rrule(MONTHLY, bymonthday=rule.day_of_month, **common)
    if isinstance(rule, NthWeekdayRule):
        return rrule(MONTHLY, byweekday=WEEKDAYS[rule.weekday](rule.nth), **common)
    if isinstance(rule, SpecificDatesRule):
        return rrule(MONTHLY, bymonthday=rule.dates_of_month, **common)
    if isinstance(rule, YearlyRule):
        return rrule(YEARLY, bymonth=rule.month_of_year, bymonthday=rule.day_of_month, **common)
    raise TypeError(f"Not a calendar recurrence rule: {type(rule).__name__}")


def candidate_dates(rule: RecurrenceRule, anchor: date, lo: date, hi: date) -> Iterator[date]:
    """Qualifying dates of `rule` in [max(lo, anchor), hi], ascending.

    Exceptions and end conditions are not applied here.
    """
    lo = max(lo, anchor)
    hi = min(hi, SEARCH_LIMIT)
    if hi < lo or isinstance(rule, AfterCompletionRule):
        return iter(())
    expansion = build_rrule(rule, anchor, hi)
    return (found.date() for found in expansion.xafter(_as_datetime(lo), inc=True))


def iter_occurrences(
    rule: RecurrenceRule,
    start_date: date,
    from_date: date,
    to_date: date,
    end_condition: Optional[EndCondition] = None,
    exceptions: Iterable[date] = (),
) -> Iterator[date]:
    """Occurrences in [from_date, to_date] honouring exceptions and the end condition."""
    end_condition = end_condition or NeverEnds()
    skipped: Set[date] = set(exceptions)

    if isinstance(end_condition, EndsOnDate):
        to_date = min(to_date, end_condition.end_date)

    if isinstance(end_condition, EndsAfterOccurrences):
        # Counted from the first occurrence, whatever the requested window
        count = 0
        for day in candidate_dates(rule, start_date, start_date, to_date):
            if day in skipped:
                continue
            count += 1
            if day >= from_date:
                yield day
            if count >= end_condition.max_occurrences:
                return
        return

    for day in candidate_dates(rule, start_date, from_date, to_date):
        if day not in skipped:
            yield day


def generate_occurrence_dates(pattern, from_date: date, to_date: date) -> List[date]:
    """
    Sorted occurrence dates of a pattern with from_date <= d <= to_date.

    Args:
        pattern: Anything exposing `rule`, `ends`, `exceptions` and `start_date`
            (a RecurringPattern, saved or not)
        from_date: Inclusive lower bound
        to_date: Inclusive upper bound

    Returns:
        Dates in ascending order; empty for after-completion rules or an
        inverted range
    """
    if to_date < from_date:
        return []
    return list(
        iter_occurrences(
            pattern.rule,
            pattern.start_date,
            from_date,
            to_date,
            pattern.ends,
            pattern.exceptions,
        )
    )


def next_occurrence(pattern, after: date) -> Optional[date]:
    """First occurrence strictly after `after`, or None."""
    if after >= SEARCH_LIMIT:
        return None
    found = iter_occurrences(
        pattern.rule,
        pattern.start_date,
        after + timedelta(days=1),
        SEARCH_LIMIT,
        pattern.ends,
        pattern.exceptions,
    )
    return next(found, None)


def effective_end_date(pattern, end_condition: Optional[EndCondition] = None) -> Optional[date]:
    """
    Last date an end condition allows for a pattern.

    `after_occurrences` maps to the date of its final occurrence; a count
    that can never be reached, like `never`, is unbounded and yields None.
    """
    end_condition = end_condition if end_condition is not None else pattern.ends

    if isinstance(end_condition, EndsOnDate):
        return end_condition.end_date
    if isinstance(end_condition, EndsAfterOccurrences):
        if isinstance(pattern.rule, AfterCompletionRule):
            return None
        occurrences = iter_occurrences(
            pattern.rule,
            pattern.start_date,
            pattern.start_date,
            SEARCH_LIMIT,
            end_condition,
            pattern.exceptions,
        )
        found = list(islice(occurrences, end_condition.max_occurrences))
        if len(found) < end_condition.max_occurrences:
            return None
        return found[-1]
    return None


def expand_for_display(pattern, from_date: date, to_date: date) -> List[OccurrencePreview]:
    """Render-only expansion: nothing is persisted."""
    return [
        OccurrencePreview(
            occurrence_date=day,
            title=pattern.title,
            start_time=pattern.start_time,
            duration=pattern.duration,
            pattern_id=pattern.id,
        )
        for day in generate_occurrence_dates(pattern, from_date, to_date)
    ]


def expand_legacy_for_display(task, from_date: date, to_date: date, today: date) -> List[OccurrencePreview]:
    """Render a legacy inline-recurrence task through the same generator."""
    transient = pattern_from_legacy_task(task, today)
    return [
        preview.model_copy(update={"pattern_id": None, "source_task_id": task.id})
        for preview in expand_for_display(transient, from_date, to_date)
    ]
