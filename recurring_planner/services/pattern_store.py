"""Pattern persistence."""
from datetime import date
from typing import List, Optional
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from recurring_planner.errors import PatternNotFoundError, UnauthorizedError
from recurring_planner.models import RecurringPattern
from recurring_planner.utils.dates import utc_now

logger = logging.getLogger(__name__)


class PatternStore:
    """Reads and writes RecurringPattern rows on a request-scoped session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, pattern: RecurringPattern) -> RecurringPattern:
        """Stage a new pattern and flush it so its id is usable."""
        self.session.add(pattern)
        await self.session.flush()
        return pattern

    async def get(self, pattern_id: str) -> Optional[RecurringPattern]:
        return await self.session.get(RecurringPattern, pattern_id)

    async def get_owned(self, pattern_id: str, user_id: str, include_deleted: bool = False) -> RecurringPattern:
        """
        Get a pattern, ensuring user ownership.

        Raises:
            PatternNotFoundError: missing, or soft-deleted unless include_deleted
            UnauthorizedError: the pattern belongs to another user
        """
        pattern = await self.get(pattern_id)
        if pattern is None or (pattern.is_deleted and not include_deleted):
            raise PatternNotFoundError(f"Pattern {pattern_id} not found", details={"pattern_id": pattern_id})
        if pattern.user_id != user_id:
            raise UnauthorizedError(
                "Not authorized to access this pattern", details={"pattern_id": pattern_id}
            )
        return pattern

    async def list_for_user(self, user_id: str, include_deleted: bool = False) -> List[RecurringPattern]:
        statement = select(RecurringPattern).where(RecurringPattern.user_id == user_id)
        if not include_deleted:
            statement = statement.where(RecurringPattern.deleted_at == None)  # noqa: E711
        statement = statement.order_by(RecurringPattern.created_at.asc())
        result = await self.session.exec(statement)
        return list(result.all())

    async def find_migrated_from(self, task_id: int) -> Optional[RecurringPattern]:
        statement = select(RecurringPattern).where(RecurringPattern.migrated_from_task_id == task_id)
        result = await self.session.exec(statement)
        return result.first()

    async def save(self, pattern: RecurringPattern) -> RecurringPattern:
        """Stage field changes on a loaded pattern, bumping updated_at."""
        pattern.updated_at = utc_now()
        self.session.add(pattern)
        await self.session.flush()
        return pattern

    async def set_watermark(self, pattern: RecurringPattern, generated_until: date) -> RecurringPattern:
        pattern.generated_until = generated_until
        return await self.save(pattern)

    async def set_active_instance(self, pattern: RecurringPattern, instance_id: Optional[int]) -> RecurringPattern:
        pattern.active_instance_id = instance_id
        return await self.save(pattern)

    async def soft_delete(self, pattern: RecurringPattern) -> RecurringPattern:
        pattern.deleted_at = utc_now()
        return await self.save(pattern)

    async def commit(self) -> None:
        await self.session.commit()
