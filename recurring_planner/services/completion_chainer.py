"""Completion Chainer for after-completion patterns."""
from datetime import date
from typing import Optional
import logging

from recurring_planner.errors import ConfigurationError, ValidationError
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.schemas.recurrence import AfterCompletionRule, EndsAfterOccurrences, EndsOnDate
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.services.task_store import InstanceFilter, TaskStore
from recurring_planner.utils.dates import add_days

logger = logging.getLogger(__name__)


class CompletionChainer:
    """Schedules the next instance when the active one is completed."""

    def __init__(self, patterns: PatternStore, tasks: TaskStore, materializer: InstanceMaterializer):
        self.patterns = patterns
        self.tasks = tasks
        self.materializer = materializer

    async def _end_reached(self, pattern: RecurringPattern, next_date: date) -> bool:
        ends = pattern.ends
        if isinstance(ends, EndsOnDate):
            return next_date > ends.end_date
        if isinstance(ends, EndsAfterOccurrences):
            existing = await self.tasks.instances_where(InstanceFilter(pattern_id=pattern.id))
            return len(existing) >= ends.max_occurrences
        return False

    async def on_instance_completed(
        self,
        pattern: RecurringPattern,
        instance_id: int,
        completion_date: date,
    ) -> Optional[Task]:
        """
        Chain the next instance after `instance_id` was completed.

        Returns:
            The new active instance; None for calendar patterns or when the
            end condition stops the chain

        Raises:
            ConfigurationError: the pattern has no days_after_completion
            ValidationError: the completed instance is not the active one
        """
        rule = pattern.rule
        if not isinstance(rule, AfterCompletionRule):
            return None
        if not rule.days_after_completion:
            raise ConfigurationError(
                "After-completion pattern has no days_after_completion",
                details={"pattern_id": pattern.id},
            )
        if pattern.active_instance_id != instance_id:
            raise ValidationError(
                "Completed instance is not the active instance of its pattern",
                details={"pattern_id": pattern.id, "instance_id": instance_id,
                         "active_instance_id": pattern.active_instance_id},
            )

        next_date = add_days(completion_date, rule.days_after_completion)
        if await self._end_reached(pattern, next_date):
            await self.patterns.set_active_instance(pattern, None)
            logger.info(f"Pattern {pattern.id} reached its end condition; chain stopped")
            return None

        instances = await self.materializer.materialize(pattern, next_date, next_date)
        next_instance = instances[0]
        await self.patterns.set_active_instance(pattern, next_instance.id)
        await self.patterns.set_watermark(pattern, max(pattern.generated_until, next_date))
        logger.info(f"Pattern {pattern.id}: next instance {next_instance.id} scheduled for {next_date}")
        return next_instance
