"""Tests for chunked batch commits."""
from datetime import date, timedelta

import pytest
from sqlmodel import select

from recurring_planner.db.batch import chunked, commit_in_chunks
from recurring_planner.errors import BatchCommitError
from recurring_planner.models import Task
from recurring_planner.utils.dates import utc_now

from tests.factories import USER_ID


def test_chunked_sizes():
    assert [len(c) for c in chunked(list(range(25)), 10)] == [10, 10, 5]
    assert chunked([], 10) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


async def test_failing_chunk_keeps_earlier_chunks(session):
    tasks = [
        Task(user_id=USER_ID, title=f"Task {i}", scheduled_date=date(2026, 1, 1) + timedelta(days=i))
        for i in range(25)
    ]
    session.add_all(tasks)
    await session.commit()
    calls = []

    async def apply(s, chunk):
        calls.append(len(chunk))
        for task in chunk:
            task.deleted_at = utc_now()
            s.add(task)
        if len(calls) == 2:
            raise RuntimeError("write quota exceeded")

    with pytest.raises(BatchCommitError) as exc_info:
        await commit_in_chunks(session, tasks, apply, chunk_size=10)

    assert exc_info.value.chunk_index == 1
    assert exc_info.value.committed == 10
    assert exc_info.value.details == {"chunk_index": 1, "committed": 10}

    result = await session.exec(select(Task).where(Task.deleted_at != None))  # noqa: E711
    assert len(result.all()) == 10


async def test_all_chunks_commit(session):
    tasks = [Task(user_id=USER_ID, title=f"Task {i}") for i in range(7)]
    session.add_all(tasks)
    await session.commit()

    async def apply(s, chunk):
        for task in chunk:
            task.completed = True
            s.add(task)

    assert await commit_in_chunks(session, tasks, apply, chunk_size=3) == 7
    result = await session.exec(select(Task).where(Task.completed == True))  # noqa: E712
    assert len(result.all()) == 7
