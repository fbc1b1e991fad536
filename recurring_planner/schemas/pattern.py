"""Pattern, instance and migration schemas."""
from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from recurring_planner.schemas.recurrence import EndCondition, NeverEnds, RecurrenceRule

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class PatternCreate(BaseModel):
    """Schema for creating a recurring pattern."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category_id: Optional[str] = Field(None, max_length=100)
    priority: str = Field(default="medium", pattern=r"^(high|medium|low)$")
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)  # HH:MM
    duration: Optional[int] = Field(None, ge=1)  # minutes
    recurrence: RecurrenceRule
    end_condition: EndCondition = Field(default_factory=NeverEnds)
    exception_dates: List[date] = Field(default_factory=list)
    start_date: date


class PatternUpdate(BaseModel):
    """Schema for updating a pattern; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category_id: Optional[str] = Field(None, max_length=100)
    priority: Optional[str] = Field(None, pattern=r"^(high|medium|low)$")
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    duration: Optional[int] = Field(None, ge=1)
    recurrence: Optional[RecurrenceRule] = None
    end_condition: Optional[EndCondition] = None
    exception_dates: Optional[List[date]] = None
    start_date: Optional[date] = None
    # Replace pristine future instances using the updated rule
    regenerate_future_instances: bool = False


class PatternResponse(BaseModel):
    """Schema for pattern API responses."""
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    priority: str = "medium"
    start_time: Optional[str] = None
    duration: Optional[int] = None
    recurrence: RecurrenceRule
    end_condition: EndCondition
    exception_dates: List[date] = []
    start_date: date
    generated_until: date
    active_instance_id: Optional[int] = None
    migrated_from_task_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    next_occurrence: Optional[date] = None  # first occurrence on or after today

    class Config:
        from_attributes = True


class InstanceResponse(BaseModel):
    """Schema for a materialized task instance."""
    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    priority: str = "medium"
    start_time: Optional[str] = None
    duration: Optional[int] = None
    scheduled_date: Optional[date] = None
    completed: bool
    completed_at: Optional[datetime] = None
    customized: bool = False
    recurring_pattern_id: Optional[str] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InstanceComplete(BaseModel):
    """Body for completing an instance; the date defaults to today."""
    completion_date: Optional[date] = None


class EnsureInstancesRequest(BaseModel):
    target_date: date


class OccurrencePreview(BaseModel):
    """A computed, non-persisted occurrence used for display."""
    occurrence_date: date
    title: str
    start_time: Optional[str] = None
    duration: Optional[int] = None
    pattern_id: Optional[str] = None
    source_task_id: Optional[int] = None  # legacy task rendered without migration


class MigrationResult(BaseModel):
    """Summary of a legacy migration run."""
    tasks_processed: int = 0
    patterns_created: int = 0
    instances_generated: int = 0
    instances_updated: int = 0
    errors: List[str] = Field(default_factory=list)
    dry_run: bool = False
