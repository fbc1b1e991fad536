"""Task model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from datetime import date, datetime
from typing import Optional

from recurring_planner.utils.dates import utc_now


class Task(SQLModel, table=True):
    """Task entity: a concrete dated work item.

    Tasks materialized from a pattern carry `recurring_pattern_id`. The
    `recurrence`, `is_recurring_instance` and `recurring_parent_id` columns
    belong to the legacy inline-recurrence representation and are only read
    by the legacy migrator.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=128)
    title: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    category_id: Optional[str] = Field(default=None, max_length=100)
    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    start_time: Optional[str] = Field(default=None, max_length=5)
    duration: Optional[int] = Field(default=None)

    scheduled_date: Optional[date] = Field(default=None, index=True)
    completed: bool = Field(default=False)
    completed_at: Optional[datetime] = Field(default=None)
    customized: bool = Field(default=False)  # set when a user edits a generated instance

    recurring_pattern_id: Optional[str] = Field(default=None, index=True, max_length=36)

    # Legacy inline recurrence
    recurrence: Optional[dict] = Field(default=None, sa_column=Column(JSON(none_as_null=True)))
    is_recurring_instance: bool = Field(default=False)
    recurring_parent_id: Optional[int] = Field(default=None, index=True)
    migrated_to_pattern_id: Optional[str] = Field(default=None, max_length=36)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def is_pristine(self) -> bool:
        """Neither completed nor edited since it was generated."""
        return not self.completed and not self.customized
