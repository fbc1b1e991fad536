"""Pattern service: the caller-facing entry point of the recurrence engine."""
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from recurring_planner.config import LOOKAHEAD_DAYS, MAX_BATCH_SIZE
from recurring_planner.errors import ValidationError
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.schemas.pattern import (
    MigrationResult,
    OccurrencePreview,
    PatternCreate,
    PatternResponse,
    PatternUpdate,
)
from recurring_planner.schemas.recurrence import AfterCompletionRule
from recurring_planner.services.completion_chainer import CompletionChainer
from recurring_planner.services.legacy_migrator import LegacyMigrator
from recurring_planner.services.materializer import InstanceMaterializer
from recurring_planner.services.occurrence_generator import (
    expand_for_display,
    expand_legacy_for_display,
    next_occurrence,
)
from recurring_planner.services.pattern_store import PatternStore
from recurring_planner.services.pattern_validator import check_rule, validate_create, validate_update, validate_user_id
from recurring_planner.services.reconciler import Reconciler
from recurring_planner.services.task_store import InstanceFilter, TaskStore
from recurring_planner.services.window_manager import WindowManager
from recurring_planner.utils.dates import add_days, to_iso_list

logger = logging.getLogger(__name__)

# Template fields that may be cleared by sending null
NULLABLE_TEMPLATE_FIELDS = ("description", "category_id", "start_time", "duration")


class PatternService:
    """Service class for recurring pattern operations."""

    def __init__(
        self,
        session: AsyncSession,
        today_provider: Callable[[], date] = date.today,
        lookahead: int = LOOKAHEAD_DAYS,
        batch_size: int = MAX_BATCH_SIZE,
    ):
        self.session = session
        self.today_provider = today_provider
        self.patterns = PatternStore(session)
        self.tasks = TaskStore(session, batch_size=batch_size)
        self.materializer = InstanceMaterializer(self.tasks)
        self.windows = WindowManager(self.patterns, self.materializer, lookahead=lookahead)
        self.reconciler = Reconciler(self.patterns, self.tasks, self.materializer, lookahead=lookahead)
        self.chainer = CompletionChainer(self.patterns, self.tasks, self.materializer)
        self.migrator = LegacyMigrator(
            self.patterns, self.tasks, self.materializer, lookahead=lookahead, today_provider=today_provider
        )

    async def _rollback_on_error(self, operation):
        try:
            return await operation
        except Exception:
            await self.session.rollback()
            raise

    async def create_pattern(self, user_id: str, data: Union[PatternCreate, Dict[str, Any]]) -> RecurringPattern:
        """Create a pattern and materialize its first window."""
        payload = validate_create(user_id, data)
        pattern = RecurringPattern(
            user_id=user_id,
            title=payload.title,
            description=payload.description,
            category_id=payload.category_id,
            priority=payload.priority,
            start_time=payload.start_time,
            duration=payload.duration,
            recurrence=payload.recurrence.model_dump(mode="json"),
            end_condition=payload.end_condition.model_dump(mode="json"),
            exception_dates=to_iso_list(payload.exception_dates),
            start_date=payload.start_date,
            generated_until=payload.start_date,
        )

        async def create() -> List[Task]:
            await self.patterns.add(pattern)
            instances = await self.windows.initialize(pattern)
            await self.patterns.commit()
            return instances

        instances = await self._rollback_on_error(create())
        logger.info(f"Created pattern {pattern.id} for user {user_id} with {len(instances)} instances")
        return pattern

    async def get_pattern(self, pattern_id: str, user_id: str) -> RecurringPattern:
        validate_user_id(user_id)
        return await self.patterns.get_owned(pattern_id, user_id)

    async def list_patterns(self, user_id: str) -> List[RecurringPattern]:
        validate_user_id(user_id)
        return await self.patterns.list_for_user(user_id)

    async def update_pattern(
        self,
        pattern_id: str,
        user_id: str,
        data: Union[PatternUpdate, Dict[str, Any]],
        regenerate_future_instances: Optional[bool] = None,
    ) -> RecurringPattern:
        """
        Update a pattern, reconciling its instances.

        An end-condition change extends or shortens the materialized
        instances. `regenerate_future_instances` (argument or payload flag)
        replaces pristine instances from today onward with the new rule.
        """
        payload = validate_update(user_id, data)
        if regenerate_future_instances is None:
            regenerate_future_instances = payload.regenerate_future_instances
        changes = payload.model_dump(exclude_unset=True, exclude={"regenerate_future_instances"})

        pattern = await self.patterns.get_owned(pattern_id, user_id)
        old_rule = pattern.rule
        old_end = pattern.ends

        new_rule = payload.recurrence if payload.recurrence is not None else old_rule
        new_end = payload.end_condition if payload.end_condition is not None else old_end
        new_start = payload.start_date or pattern.start_date
        check_rule(new_rule, new_end, new_start)
        if isinstance(new_rule, AfterCompletionRule) != isinstance(old_rule, AfterCompletionRule):
            raise ValidationError(
                "Cannot switch between after_completion and calendar recurrence",
                details={"pattern_id": pattern_id},
            )

        for field, value in changes.items():
            if field in ("recurrence", "end_condition", "exception_dates", "start_date"):
                continue
            if value is None and field not in NULLABLE_TEMPLATE_FIELDS:
                continue
            setattr(pattern, field, value)
        if payload.recurrence is not None:
            pattern.recurrence = payload.recurrence.model_dump(mode="json")
        if payload.end_condition is not None:
            pattern.end_condition = payload.end_condition.model_dump(mode="json")
        if payload.exception_dates is not None:
            pattern.exception_dates = to_iso_list(payload.exception_dates)
        if payload.start_date is not None:
            pattern.start_date = payload.start_date
            pattern.generated_until = max(pattern.generated_until, payload.start_date)

        today = self.today_provider()

        async def update() -> None:
            await self.patterns.save(pattern)
            if payload.end_condition is not None and new_end != old_end:
                await self.reconciler.apply_end_condition_change(pattern, old_end, today)
            if regenerate_future_instances:
                await self.reconciler.regenerate_future_instances(pattern, today)
            await self.patterns.commit()

        await self._rollback_on_error(update())
        logger.info(f"Updated pattern {pattern_id} (regenerate={regenerate_future_instances})")
        return pattern

    async def delete_pattern(self, pattern_id: str, user_id: str, cascade_instances: bool = False) -> int:
        """
        Soft-delete a pattern, optionally with all of its instances.

        Returns:
            Number of instances soft-deleted
        """
        validate_user_id(user_id)
        pattern = await self.patterns.get_owned(pattern_id, user_id)
        await self._rollback_on_error(self._soft_delete(pattern))

        deleted = 0
        if cascade_instances:
            deleted = await self.tasks.soft_delete_instances(InstanceFilter(pattern_id=pattern_id))
        logger.info(f"Deleted pattern {pattern_id} (cascade={cascade_instances}, instances={deleted})")
        return deleted

    async def _soft_delete(self, pattern: RecurringPattern) -> None:
        await self.patterns.soft_delete(pattern)
        await self.patterns.commit()

    async def ensure_instances_for_date(self, pattern_id: str, user_id: str, target_date: date) -> List[Task]:
        validate_user_id(user_id)
        return await self._rollback_on_error(
            self.windows.ensure_instances_for_date(pattern_id, user_id, target_date)
        )

    async def on_instance_completed(
        self,
        pattern_id: str,
        instance_id: int,
        user_id: str,
        completion_date: Optional[date] = None,
    ) -> Optional[Task]:
        """Chain the next instance of an after-completion pattern."""
        validate_user_id(user_id)
        pattern = await self.patterns.get_owned(pattern_id, user_id)
        completion_date = completion_date or self.today_provider()

        async def chain() -> Optional[Task]:
            next_instance = await self.chainer.on_instance_completed(pattern, instance_id, completion_date)
            await self.patterns.commit()
            return next_instance

        return await self._rollback_on_error(chain())

    async def complete_instance(
        self,
        task_id: int,
        user_id: str,
        completion_date: Optional[date] = None,
    ) -> Tuple[Task, Optional[Task]]:
        """
        Mark a task completed and chain its pattern when it has one.

        Returns:
            (completed task, next instance or None)
        """
        validate_user_id(user_id)
        task = await self.tasks.get_task(task_id, user_id)
        if task.completed:
            raise ValidationError("Task is already completed", details={"task_id": task_id})
        completion_date = completion_date or self.today_provider()

        pattern = None
        if task.recurring_pattern_id:
            pattern = await self.patterns.get(task.recurring_pattern_id)
            if pattern is not None and pattern.is_deleted:
                pattern = None

        async def complete() -> Optional[Task]:
            next_instance = None
            if pattern is not None:
                next_instance = await self.chainer.on_instance_completed(pattern, task.id, completion_date)
            await self.tasks.mark_completed(task)
            await self.patterns.commit()
            return next_instance

        next_instance = await self._rollback_on_error(complete())
        return task, next_instance

    async def get_instances_for_pattern(
        self,
        pattern_id: str,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        include_deleted: bool = False,
    ) -> List[Task]:
        validate_user_id(user_id)
        await self.patterns.get_owned(pattern_id, user_id, include_deleted=include_deleted)
        return await self.tasks.instances_where(
            InstanceFilter(
                pattern_id=pattern_id,
                scheduled_from=from_date,
                scheduled_to=to_date,
                include_deleted=include_deleted,
            )
        )

    async def preview_occurrences(
        self,
        pattern_id: str,
        user_id: str,
        from_date: date,
        to_date: date,
    ) -> List[OccurrencePreview]:
        """Compute occurrences without persisting anything."""
        validate_user_id(user_id)
        if to_date < from_date:
            raise ValidationError("to_date must not be before from_date")
        pattern = await self.patterns.get_owned(pattern_id, user_id)
        return expand_for_display(pattern, from_date, to_date)

    async def preview_legacy_task(
        self,
        task_id: int,
        user_id: str,
        from_date: date,
        to_date: date,
    ) -> List[OccurrencePreview]:
        """Render a not-yet-migrated legacy task through the pattern generator."""
        validate_user_id(user_id)
        if to_date < from_date:
            raise ValidationError("to_date must not be before from_date")
        task = await self.tasks.get_task(task_id, user_id)
        return expand_legacy_for_display(task, from_date, to_date, self.today_provider())

    async def migrate_legacy_item(self, task_id: int, user_id: str, dry_run: bool = False) -> MigrationResult:
        validate_user_id(user_id)
        return await self.migrator.migrate_legacy_item(task_id, user_id, dry_run=dry_run)

    async def migrate_all_legacy_items(self, user_id: Optional[str] = None, dry_run: bool = False) -> MigrationResult:
        if user_id is not None:
            validate_user_id(user_id)
        return await self.migrator.migrate_all_legacy_items(user_id, dry_run=dry_run)

    def to_response(self, pattern: RecurringPattern) -> PatternResponse:
        response = PatternResponse.model_validate(pattern)
        upcoming = next_occurrence(pattern, add_days(self.today_provider(), -1))
        return response.model_copy(update={"next_occurrence": upcoming})
