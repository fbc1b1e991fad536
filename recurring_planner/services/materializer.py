"""Instance Materializer: turns occurrence dates into persisted tasks."""
from datetime import date
from typing import Iterable, List
import logging

from recurring_planner.models import RecurringPattern, Task
from recurring_planner.services.occurrence_generator import generate_occurrence_dates
from recurring_planner.services.task_store import TaskStore
from recurring_planner.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)


class InstanceMaterializer:
    """Creates task instances for a pattern through the task store."""

    def __init__(self, tasks: TaskStore):
        self.tasks = tasks

    async def materialize(
        self,
        pattern: RecurringPattern,
        from_date: date,
        to_date: date,
        skip_dates: Iterable[date] = (),
    ) -> List[Task]:
        """
        Create one instance per occurrence date in [from_date, to_date].

        After-completion patterns get exactly one instance, at from_date.
        Each instance is written inside its own savepoint; a failed date is
        logged and skipped, and the successful subset is returned. Nothing
        is committed here.

        Args:
            pattern: Pattern supplying the rule and the task template
            from_date: Inclusive lower bound
            to_date: Inclusive upper bound
            skip_dates: Dates already held by existing instances

        Returns:
            The created instances, in date order
        """
        if pattern.is_after_completion:
            instance = await self.tasks.create_instance(pattern, from_date, pattern.id, pattern.user_id)
            metrics_collector.instance_created()
            return [instance]

        skipped = set(skip_dates)
        created: List[Task] = []
        for day in generate_occurrence_dates(pattern, from_date, to_date):
            if day in skipped:
                continue
            try:
                async with self.tasks.session.begin_nested():
                    instance = await self.tasks.create_instance(pattern, day, pattern.id, pattern.user_id)
            except Exception:
                logger.exception(f"Failed to create instance of pattern {pattern.id} for {day}")
                metrics_collector.instance_failed()
                continue
            created.append(instance)

        metrics_collector.instance_created(len(created))
        logger.debug(f"Materialized {len(created)} instances of pattern {pattern.id} in [{from_date}, {to_date}]")
        return created
