"""Shared fixtures: a file-backed SQLite database per test and a fixed clock."""
from datetime import date

import pytest

from recurring_planner.db.config import build_engine, build_session_factory
from recurring_planner.db.init import init_db
from recurring_planner.services.pattern_service import PatternService
from recurring_planner.utils.metrics import metrics_collector

from tests.factories import FixedClock


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics_collector.reset()
    yield


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'planner.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = build_session_factory(engine)
    async with factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(date(2026, 1, 1))


@pytest.fixture
def service(session, clock):
    return PatternService(session, today_provider=clock)
