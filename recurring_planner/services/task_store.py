"""Work-item adapter: the task operations the recurrence engine relies on."""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from recurring_planner.config import MAX_BATCH_SIZE
from recurring_planner.db.batch import commit_in_chunks
from recurring_planner.errors import TaskNotFoundError, UnauthorizedError
from recurring_planner.models import RecurringPattern, Task
from recurring_planner.utils.dates import utc_now
from recurring_planner.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)


@dataclass
class InstanceFilter:
    """Selects instances of one pattern; date bounds are optional."""
    pattern_id: str
    scheduled_after: Optional[date] = None  # exclusive
    scheduled_from: Optional[date] = None  # inclusive
    scheduled_to: Optional[date] = None  # inclusive
    pristine_only: bool = False
    include_deleted: bool = False


class TaskStore:
    """Task persistence for generated instances and legacy records."""

    def __init__(self, session: AsyncSession, batch_size: int = MAX_BATCH_SIZE):
        self.session = session
        self.batch_size = batch_size

    async def create_instance(
        self,
        template: RecurringPattern,
        scheduled_date: date,
        pattern_id: str,
        user_id: str,
    ) -> Task:
        """Stage a new instance copied from the pattern template.

        The row is flushed, not committed; callers own the transaction.
        """
        task = Task(
            user_id=user_id,
            title=template.title,
            description=template.description,
            category_id=template.category_id,
            priority=template.priority,
            start_time=template.start_time,
            duration=template.duration,
            scheduled_date=scheduled_date,
            recurring_pattern_id=pattern_id,
        )
        self.session.add(task)
        await self.session.flush()
        return task

    async def get_task(self, task_id: int, user_id: str) -> Task:
        """Get a non-deleted task, ensuring user ownership."""
        task = await self.session.get(Task, task_id)
        if task is None or task.deleted_at is not None:
            raise TaskNotFoundError(f"Task {task_id} not found", details={"task_id": task_id})
        if task.user_id != user_id:
            raise UnauthorizedError("Not authorized to access this task", details={"task_id": task_id})
        return task

    async def instances_where(self, instance_filter: InstanceFilter) -> List[Task]:
        statement = select(Task).where(Task.recurring_pattern_id == instance_filter.pattern_id)

        if not instance_filter.include_deleted:
            statement = statement.where(Task.deleted_at == None)  # noqa: E711
        if instance_filter.scheduled_after is not None:
            statement = statement.where(Task.scheduled_date > instance_filter.scheduled_after)
        if instance_filter.scheduled_from is not None:
            statement = statement.where(Task.scheduled_date >= instance_filter.scheduled_from)
        if instance_filter.scheduled_to is not None:
            statement = statement.where(Task.scheduled_date <= instance_filter.scheduled_to)
        if instance_filter.pristine_only:
            statement = statement.where(Task.completed == False)  # noqa: E712
            statement = statement.where(Task.customized == False)  # noqa: E712

        statement = statement.order_by(Task.scheduled_date.asc(), Task.id.asc())
        result = await self.session.exec(statement)
        return list(result.all())

    async def soft_delete_instances(self, instance_filter: InstanceFilter) -> int:
        """Tombstone every matching instance in chunked commits.

        Returns:
            Number of instances soft-deleted

        Raises:
            BatchCommitError: when a chunk fails; earlier chunks stay deleted
        """
        instance_filter.include_deleted = False
        tasks = await self.instances_where(instance_filter)
        if not tasks:
            return 0

        now = utc_now()

        async def apply(session: AsyncSession, chunk: List[Task]) -> None:
            for task in chunk:
                task.deleted_at = now
                task.updated_at = now
                session.add(task)

        deleted = await commit_in_chunks(self.session, tasks, apply, chunk_size=self.batch_size)
        metrics_collector.instances_soft_deleted(deleted)
        logger.info(f"Soft-deleted {deleted} instances of pattern {instance_filter.pattern_id}")
        return deleted

    async def mark_completed(self, task: Task) -> Task:
        now = utc_now()
        task.completed = True
        task.completed_at = now
        task.updated_at = now
        self.session.add(task)
        await self.session.flush()
        return task

    # Legacy migration helpers

    async def legacy_items(self, user_id: Optional[str] = None) -> List[Task]:
        """Non-deleted tasks that still carry their own inline rule."""
        statement = (
            select(Task)
            .where(Task.deleted_at == None)  # noqa: E711
            .where(Task.is_recurring_instance == False)  # noqa: E712
            .where(Task.recurring_parent_id == None)  # noqa: E711
            .where(Task.recurring_pattern_id == None)  # noqa: E711
        )
        if user_id:
            statement = statement.where(Task.user_id == user_id)
        statement = statement.order_by(Task.id.asc())
        result = await self.session.exec(statement)
        return [task for task in result.all() if task.recurrence]

    async def children_of(self, legacy_id: int) -> List[Task]:
        statement = (
            select(Task)
            .where(Task.recurring_parent_id == legacy_id)
            .where(Task.deleted_at == None)  # noqa: E711
            .order_by(Task.scheduled_date.asc(), Task.id.asc())
        )
        result = await self.session.exec(statement)
        return list(result.all())

    async def repoint_instances(self, tasks: List[Task], pattern_id: str) -> int:
        """Attach legacy children to a pattern as ordinary instances."""
        now = utc_now()
        for task in tasks:
            task.recurring_pattern_id = pattern_id
            task.recurring_parent_id = None
            task.is_recurring_instance = False
            task.updated_at = now
            self.session.add(task)
        await self.session.flush()
        return len(tasks)

    async def mark_migrated(self, task: Task, pattern_id: str) -> None:
        now = utc_now()
        task.migrated_to_pattern_id = pattern_id
        task.deleted_at = now
        task.updated_at = now
        self.session.add(task)
        await self.session.flush()
