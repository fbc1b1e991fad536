"""Recurrence rule and end condition schemas.

Both are closed discriminated unions keyed on ``type``. Weekdays follow the
planner convention 0=Sunday .. 6=Saturday.
"""
import calendar
from datetime import date
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


class DailyRule(BaseModel):
    """Every `interval` days from the start date."""
    type: Literal["daily"] = "daily"
    interval: int = Field(default=1, ge=1)


class WeeklyRule(BaseModel):
    """Selected weekdays in every `interval`-th week."""
    type: Literal["weekly"] = "weekly"
    interval: int = Field(default=1, ge=1)
    days_of_week: List[int] = Field(..., min_length=1)

    @field_validator("days_of_week")
    @classmethod
    def _normalize_days(cls, value: List[int]) -> List[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError(f"days_of_week entries must be 0-6, got {day}")
        return sorted(set(value))


class MonthlyByDayRule(BaseModel):
    """A fixed day of month; months without that day are skipped."""
    type: Literal["monthly_by_day"] = "monthly_by_day"
    interval: int = Field(default=1, ge=1)
    day_of_month: int = Field(..., ge=1, le=31)


class YearlyRule(BaseModel):
    type: Literal["yearly"] = "yearly"
    interval: int = Field(default=1, ge=1)
    month_of_year: int = Field(..., ge=1, le=12)
    day_of_month: int = Field(..., ge=1, le=31)

    @model_validator(mode="after")
    def _check_day_exists(self) -> "YearlyRule":
        # 2000 is a leap year, so Feb 29 is accepted
        if self.day_of_month > calendar.monthrange(2000, self.month_of_year)[1]:
            raise ValueError(
                f"Day {self.day_of_month} never occurs in month {self.month_of_year}"
            )
        return self


class NthWeekdayRule(BaseModel):
    """The nth (1-5) or last (-1) weekday of qualifying months."""
    type: Literal["nth_weekday"] = "nth_weekday"
    interval: int = Field(default=1, ge=1)
    nth: int
    weekday: int = Field(..., ge=0, le=6)

    @field_validator("nth")
    @classmethod
    def _check_nth(cls, value: int) -> int:
        if value not in (1, 2, 3, 4, 5, -1):
            raise ValueError("nth must be 1-5, or -1 for the last weekday")
        return value


class SpecificDatesRule(BaseModel):
    type: Literal["specific_dates"] = "specific_dates"
    interval: int = Field(default=1, ge=1)
    dates_of_month: List[int] = Field(..., min_length=1)

    @field_validator("dates_of_month")
    @classmethod
    def _normalize_dates(cls, value: List[int]) -> List[int]:
        for day in value:
            if day < 1 or day > 31:
                raise ValueError(f"dates_of_month entries must be 1-31, got {day}")
        return sorted(set(value))


class AfterCompletionRule(BaseModel):
    """Next instance is scheduled relative to the previous one's completion."""
    type: Literal["after_completion"] = "after_completion"
    days_after_completion: Optional[int] = Field(default=None, ge=1)


RecurrenceRule = Annotated[
    Union[
        DailyRule,
        WeeklyRule,
        MonthlyByDayRule,
        YearlyRule,
        NthWeekdayRule,
        SpecificDatesRule,
        AfterCompletionRule,
    ],
    Field(discriminator="type"),
]


class NeverEnds(BaseModel):
    type: Literal["never"] = "never"


class EndsOnDate(BaseModel):
    type: Literal["on_date"] = "on_date"
    end_date: date


class EndsAfterOccurrences(BaseModel):
    type: Literal["after_occurrences"] = "after_occurrences"
    max_occurrences: int = Field(..., ge=1)


EndCondition = Annotated[
    Union[NeverEnds, EndsOnDate, EndsAfterOccurrences],
    Field(discriminator="type"),
]

recurrence_adapter = TypeAdapter(RecurrenceRule)
end_condition_adapter = TypeAdapter(EndCondition)


def parse_recurrence(data: dict) -> RecurrenceRule:
    """Parse a stored rule document into its typed variant."""
    return recurrence_adapter.validate_python(data)


def parse_end_condition(data: Optional[dict]) -> EndCondition:
    if not data:
        return NeverEnds()
    return end_condition_adapter.validate_python(data)
