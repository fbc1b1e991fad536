"""Recurring planner: recurrence patterns materialized into dated tasks."""

__version__ = "1.0.0"
