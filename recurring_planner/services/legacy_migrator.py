"""
Legacy Migrator

Moves tasks that carry an inline recurrence rule onto the pattern +
instance model. Each legacy task becomes one pattern; its persisted
children become ordinary instances of that pattern, the remaining window is
materialized, and the legacy task is tombstoned with a forward reference.
"""
from datetime import date
from typing import Callable, List, Optional, Tuple

from recurring_planner.config import LOOKAHEAD_DAYS
from recurring_planner.errors import RecurrenceError, TaskNotFoundError, UnauthorizedError, ValidationError
from recurring_planner.models import Task
from recurring_planner.schemas.pattern import MigrationResult
from recurring_planner.services.legacy_rules import pattern_from_legacy_task
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.occurrence_generator import generate_occurrence_dates
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.services.task_store import TaskStore
from recurring_planner.utils.dates import add_days
from recurring_planner.utils.logger import get_logger
from recurring_planner.utils.metrics import metrics_collector

logger = get_logger(__name__)


def merge_results(total: MigrationResult, item: MigrationResult) -> None:
    total.tasks_processed += item.tasks_processed
    total.patterns_created += item.patterns_created
    total.instances_generated += item.instances_generated
    total.instances_updated += item.instances_updated
    total.errors.extend(item.errors)


class LegacyMigrator:
    """One-time conversion of inline-recurrence tasks into patterns."""

    def __init__(
        self,
        patterns: PatternStore,
        tasks: TaskStore,
        materializer: InstanceMaterializer,
        lookahead: int = LOOKAHEAD_DAYS,
        today_provider: Callable[[], date] = date.today,
    ):
        self.patterns = patterns
        self.tasks = tasks
        self.materializer = materializer
        self.lookahead = lookahead
        self.today_provider = today_provider

    @property
    def session(self):
        return self.tasks.session

    async def _load_legacy(self, task_id: int, user_id: str) -> Optional[Task]:
        """Return the legacy task, or None when it was already migrated."""
        task = await self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found", details={"task_id": task_id})
        if task.user_id != user_id:
            raise UnauthorizedError("Not authorized to migrate this task", details={"task_id": task_id})

        if task.migrated_to_pattern_id and task.deleted_at is not None:
            return None
        if await self.patterns.find_migrated_from(task_id) is not None:
            return None

        if task.deleted_at is not None:
            raise ValidationError("Deleted tasks cannot be migrated", details={"task_id": task_id})
        if task.is_recurring_instance or task.recurring_parent_id is not None:
            raise ValidationError(
                "Generated instances are migrated with their parent", details={"task_id": task_id}
            )
        if not task.recurrence:
            raise ValidationError("Task has no inline recurrence", details={"task_id": task_id})
        return task

    def _plan(self, pattern, children: List[Task], today: date) -> Tuple[date, date, List[date]]:
        """Window to fill as (first, horizon, dates); past legacy occurrences are not materialized."""
        first = max(pattern.start_date, today)
        horizon = max(pattern.start_date, add_days(today, self.lookahead))
        covered = {child.scheduled_date for child in children}
        if pattern.is_after_completion:
            pending = [child for child in children if child.is_pristine]
            return first, horizon, [] if pending else [pattern.start_date]
        dates = generate_occurrence_dates(pattern, first, horizon)
        return first, horizon, [day for day in dates if day not in covered]

    async def migrate_legacy_item(self, task_id: int, user_id: str, dry_run: bool = False) -> MigrationResult:
        """
        Migrate one legacy recurring task.

        Args:
            task_id: Legacy task id
            user_id: Owner of the task
            dry_run: Count what would change without writing

        Returns:
            MigrationResult for this item; all zero when already migrated

        Raises:
            RecurrenceError: not found, not owned, or not migratable
        """
        result = MigrationResult(dry_run=dry_run)
        legacy = await self._load_legacy(task_id, user_id)
        if legacy is None:
            logger.info("Task already migrated", task_id=task_id)
            return result

        today = self.today_provider()
        pattern = pattern_from_legacy_task(legacy, today)
        children = await self.tasks.children_of(legacy.id)
        first, horizon, planned_dates = self._plan(pattern, children, today)

        result.tasks_processed = 1
        result.patterns_created = 1
        result.instances_updated = len(children)

        if dry_run:
            result.instances_generated = len(planned_dates)
            logger.info(
                "Dry run: task would be migrated",
                task_id=task_id,
                rule=pattern.recurrence,
                children=len(children),
                instances=len(planned_dates),
            )
            return result

        try:
            await self.patterns.add(pattern)
            await self.tasks.repoint_instances(children, pattern.id)

            if pattern.is_after_completion:
                pending = [child for child in children if child.is_pristine]
                if pending:
                    active = pending[-1]
                    created = []
                else:
                    created = await self.materializer.materialize(pattern, pattern.start_date, pattern.start_date)
                    active = created[0]
                await self.patterns.set_active_instance(pattern, active.id)
            else:
                covered = {child.scheduled_date for child in children}
                created = await self.materializer.materialize(
                    pattern, first, horizon, skip_dates=covered
                )
                await self.patterns.set_watermark(pattern, horizon)

            await self.tasks.mark_migrated(legacy, pattern.id)
            await self.patterns.commit()
        except Exception:
            await self.session.rollback()
            raise

        result.instances_generated = len(created)
        metrics_collector.pattern_migrated()
        logger.info(
            "Task migrated",
            task_id=task_id,
            pattern_id=pattern.id,
            instances_generated=len(created),
            instances_updated=len(children),
        )
        return result

    async def migrate_all_legacy_items(self, user_id: Optional[str] = None, dry_run: bool = False) -> MigrationResult:
        """
        Migrate every legacy recurring task, optionally for one user.

        Items are processed one after another; a failing item is recorded in
        `errors` and the run continues.
        """
        total = MigrationResult(dry_run=dry_run)
        candidates = [(task.id, task.user_id) for task in await self.tasks.legacy_items(user_id)]
        logger.info("Legacy migration started", candidates=len(candidates), user_id=user_id, dry_run=dry_run)

        for task_id, owner_id in candidates:
            try:
                item = await self.migrate_legacy_item(task_id, owner_id, dry_run=dry_run)
            except RecurrenceError as e:
                logger.error("Task migration failed", task_id=task_id, code=e.code, error=e.message)
                total.errors.append(f"Task {task_id}: {e.message}")
                continue
            except Exception as e:
                logger.exception("Task migration failed", task_id=task_id)
                total.errors.append(f"Task {task_id}: {e}")
                continue
            merge_results(total, item)

        logger.info("Legacy migration finished", **total.model_dump())
        return total
