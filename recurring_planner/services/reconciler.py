"""Reconciler: brings materialized instances in line with an edited pattern."""
from datetime import date
from typing import List, Optional
import logging

from recurring_planner.config import LOOKAHEAD_DAYS
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.schemas.recurrence import EndCondition
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.occurrence_generator import effective_end_date
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.services.task_store import InstanceFilter, TaskStore
from recurring_planner.utils.dates import add_days

logger = logging.getLogger(__name__)


def is_later(new_end: Optional[date], old_end: Optional[date]) -> bool:
    """True when `new_end` allows strictly more dates; None is unbounded."""
    if old_end is None:
        return False
    return new_end is None or new_end > old_end


def is_earlier(new_end: Optional[date], old_end: Optional[date]) -> bool:
    if new_end is None:
        return False
    return old_end is None or new_end < old_end


class Reconciler:
    """Handles end-condition changes and explicit regeneration."""

    def __init__(
        self,
        patterns: PatternStore,
        tasks: TaskStore,
        materializer: InstanceMaterializer,
        lookahead: int = LOOKAHEAD_DAYS,
    ):
        self.patterns = patterns
        self.tasks = tasks
        self.materializer = materializer
        self.lookahead = lookahead

    def capped_watermark(self, end: Optional[date], today: date) -> date:
        horizon = add_days(today, self.lookahead)
        if end is None:
            return horizon
        return min(horizon, end)

    async def apply_end_condition_change(
        self,
        pattern: RecurringPattern,
        old_end_condition: EndCondition,
        today: date,
    ) -> List[Task]:
        """
        React to `pattern.end_condition` having replaced `old_end_condition`.

        A later end materializes the newly allowed dates from today onward;
        an earlier end soft-deletes every instance scheduled after it.

        Returns:
            Instances created by an extension
        """
        old_end = effective_end_date(pattern, old_end_condition)
        new_end = effective_end_date(pattern)

        if is_later(new_end, old_end):
            return await self._extend(pattern, old_end, new_end, today)
        if is_earlier(new_end, old_end):
            await self._shorten(pattern, new_end)
        return []

    async def _extend(
        self,
        pattern: RecurringPattern,
        old_end: date,
        new_end: Optional[date],
        today: date,
    ) -> List[Task]:
        if pattern.is_after_completion:
            # Chained patterns only grow through completions
            return []

        materialized_until = min(pattern.generated_until, old_end)
        lower = max(materialized_until, add_days(today, -1))  # exclusive
        # Fill everything the watermark already claims, not just the lookahead
        upper = max(self.capped_watermark(None, today), pattern.generated_until)
        if new_end is not None:
            upper = min(upper, new_end)
        if upper <= lower:
            return []

        instances = await self.materializer.materialize(pattern, add_days(lower, 1), upper)
        await self.patterns.set_watermark(pattern, max(pattern.generated_until, upper))
        await self.patterns.commit()
        logger.info(
            f"Extended pattern {pattern.id} through {upper}: {len(instances)} instances created"
        )
        return instances

    async def _shorten(self, pattern: RecurringPattern, new_end: date) -> int:
        deleted = await self.tasks.soft_delete_instances(
            InstanceFilter(pattern_id=pattern.id, scheduled_after=new_end)
        )
        if pattern.active_instance_id is not None:
            active = await self.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
            if pattern.active_instance_id not in {task.id for task in active}:
                await self.patterns.set_active_instance(pattern, None)
        await self.patterns.commit()
        logger.info(f"Shortened pattern {pattern.id} to {new_end}: {deleted} instances soft-deleted")
        return deleted

    async def regenerate_future_instances(self, pattern: RecurringPattern, today: date) -> List[Task]:
        """
        Replace pristine instances from today onward using the current rule.

        Completed and customized instances survive, and their dates are not
        generated again. For after-completion patterns a deleted active
        instance is replaced by one on the same date.

        Returns:
            The newly created instances
        """
        pristine = await self.tasks.instances_where(
            InstanceFilter(pattern_id=pattern.id, scheduled_from=today, pristine_only=True)
        )
        active_date = None
        for task in pristine:
            if task.id == pattern.active_instance_id:
                active_date = task.scheduled_date

        await self.tasks.soft_delete_instances(
            InstanceFilter(pattern_id=pattern.id, scheduled_from=today, pristine_only=True)
        )

        if pattern.is_after_completion:
            if active_date is None:
                return []
            instances = await self.materializer.materialize(pattern, active_date, active_date)
            await self.patterns.set_active_instance(pattern, instances[0].id)
            await self.patterns.commit()
            return instances

        kept = await self.tasks.instances_where(InstanceFilter(pattern_id=pattern.id, scheduled_from=today))
        held_dates = {task.scheduled_date for task in kept}

        # Never pull the watermark back behind instances that were kept
        new_watermark = max(
            pattern.start_date,
            pattern.generated_until,
            self.capped_watermark(effective_end_date(pattern), today),
        )
        instances = await self.materializer.materialize(pattern, today, new_watermark, skip_dates=held_dates)
        await self.patterns.set_watermark(pattern, new_watermark)
        await self.patterns.commit()
        logger.info(
            f"Regenerated pattern {pattern.id}: {len(pristine)} replaced by {len(instances)} instances"
        )
        return instances
