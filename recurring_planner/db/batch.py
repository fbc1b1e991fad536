"""Chunked, sequentially committed batch writes."""
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from sqlmodel.ext.asyncio.session import AsyncSession

from recurring_planner.config import MAX_BATCH_SIZE
from recurring_planner.errors import BatchCommitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def commit_in_chunks(
    session: AsyncSession,
    operations: Sequence[T],
    apply: Callable[[AsyncSession, List[T]], Awaitable[None]],
    chunk_size: int = MAX_BATCH_SIZE,
) -> int:
    """
    Apply operations in chunks of at most `chunk_size`, committing each chunk.

    Chunks already committed stay applied when a later chunk fails; the
    failing chunk is rolled back and reported through BatchCommitError.

    Returns:
        Number of operations committed
    """
    committed = 0
    for index, chunk in enumerate(chunked(operations, chunk_size)):
        try:
            await apply(session, chunk)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(
                f"Batch chunk {index} failed after {committed} committed operations: {e}"
            )
            raise BatchCommitError(
                f"Batch write failed at chunk {index}",
                chunk_index=index,
                committed=committed,
            ) from e
        committed += len(chunk)
    return committed
