"""Recurring Pattern model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from datetime import date, datetime
from typing import List, Optional, Set
import uuid

from recurring_planner.schemas.recurrence import (
    AfterCompletionRule,
    EndCondition,
    RecurrenceRule,
    parse_end_condition,
    parse_recurrence,
)
from recurring_planner.utils.dates import to_date_set, utc_now


class RecurringPattern(SQLModel, table=True):
    """A persisted recurrence rule plus the template for generated tasks."""

    __tablename__ = "recurring_pattern"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=128)

    # Template fields copied onto every materialized task
    title: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    category_id: Optional[str] = Field(default=None, max_length=100)
    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    start_time: Optional[str] = Field(default=None, max_length=5)  # HH:MM
    duration: Optional[int] = Field(default=None)  # minutes

    recurrence: dict = Field(sa_column=Column(JSON, nullable=False))
    end_condition: dict = Field(default_factory=lambda: {"type": "never"}, sa_column=Column(JSON, nullable=False))
    exception_dates: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))  # ISO dates

    start_date: date
    generated_until: date  # instances exist for every qualifying date <= this
    active_instance_id: Optional[int] = Field(default=None)  # after_completion only
    migrated_from_task_id: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def rule(self) -> RecurrenceRule:
        """Typed view of the stored recurrence document."""
        return parse_recurrence(self.recurrence)

    @property
    def ends(self) -> EndCondition:
        return parse_end_condition(self.end_condition)

    @property
    def exceptions(self) -> Set[date]:
        return to_date_set(self.exception_dates)

    @property
    def is_after_completion(self) -> bool:
        return isinstance(self.rule, AfterCompletionRule)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
