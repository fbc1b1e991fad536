"""SQLModel tables for the recurring planner."""

from .pattern import RecurringPattern
from .task import Task

__all__ = ["RecurringPattern", "Task"]
