"""Calendar date helpers shared by the engine."""
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set, Union


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in audit columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Normalize a boundary value to a calendar date.

    Datetimes and ISO strings are truncated to their calendar day, so
    "2026-02-05T10:00:00Z" and date(2026, 2, 5) compare equal.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return date.fromisoformat(text[:10])
    raise TypeError(f"Unsupported date value: {value!r}")


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def to_date_set(values: Optional[Iterable]) -> Set[date]:
    return {d for d in (to_date(v) for v in (values or [])) if d is not None}


def to_iso_list(values: Iterable[date]) -> List[str]:
    return sorted(d.isoformat() for d in values)
