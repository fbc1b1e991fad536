"""Window Manager: keeps materialized instances ahead of what callers look at."""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple
import logging

from recurring_planner.config import LOOKAHEAD_DAYS
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.utils.dates import add_days

logger = logging.getLogger(__name__)


@dataclass
class PatternWindow:
    """Generation state of one pattern.

    Calendar patterns move their watermark forward; after-completion
    patterns instead hold at most one active instance.
    """
    pattern_id: str
    generated_until: date
    chained: bool = False
    active_instance_id: Optional[int] = None

    @classmethod
    def of(cls, pattern: RecurringPattern) -> "PatternWindow":
        return cls(
            pattern_id=pattern.id,
            generated_until=pattern.generated_until,
            chained=pattern.is_after_completion,
            active_instance_id=pattern.active_instance_id,
        )

    @property
    def has_active_instance(self) -> bool:
        return self.active_instance_id is not None

    def covers(self, target_date: date) -> bool:
        return target_date <= self.generated_until

    def extension_for(self, target_date: date, lookahead: int = LOOKAHEAD_DAYS) -> Optional[Tuple[date, date]]:
        """Inclusive range to materialize so `target_date` is covered, or None."""
        if self.chained or self.covers(target_date):
            return None
        return add_days(self.generated_until, 1), add_days(target_date, lookahead)


class WindowManager:
    """Extends a pattern's materialized window on demand."""

    def __init__(self, patterns: PatternStore, materializer: InstanceMaterializer, lookahead: int = LOOKAHEAD_DAYS):
        self.patterns = patterns
        self.materializer = materializer
        self.lookahead = lookahead

    def initial_window(self, pattern: RecurringPattern) -> Tuple[date, date]:
        return pattern.start_date, add_days(pattern.start_date, self.lookahead)

    async def initialize(self, pattern: RecurringPattern) -> List[Task]:
        """Materialize the first window of a freshly staged pattern."""
        if pattern.is_after_completion:
            instances = await self.materializer.materialize(pattern, pattern.start_date, pattern.start_date)
            await self.patterns.set_active_instance(pattern, instances[0].id)
            await self.patterns.set_watermark(pattern, pattern.start_date)
            return instances

        from_date, to_date = self.initial_window(pattern)
        instances = await self.materializer.materialize(pattern, from_date, to_date)
        await self.patterns.set_watermark(pattern, to_date)
        return instances

    async def ensure_instances_for_date(self, pattern_id: str, user_id: str, target_date: date) -> List[Task]:
        """
        Make sure instances exist through `target_date`.

        No-op when the watermark already covers the target or the pattern is
        chained on completion. Otherwise materializes (watermark, target +
        lookahead] and moves the watermark there, even when some instances
        failed to write.

        Returns:
            Newly created instances
        """
        pattern = await self.patterns.get_owned(pattern_id, user_id)
        window = PatternWindow.of(pattern)
        extension = window.extension_for(target_date, self.lookahead)
        if extension is None:
            return []

        from_date, new_watermark = extension
        instances = await self.materializer.materialize(pattern, from_date, new_watermark)
        await self.patterns.set_watermark(pattern, new_watermark)
        await self.patterns.commit()
        logger.info(
            f"Extended pattern {pattern_id} to {new_watermark}: {len(instances)} instances created"
        )
        return instances
