"""Initialize database tables."""
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel

# Imported for table registration on SQLModel.metadata
from recurring_planner.models import RecurringPattern, Task  # noqa: F401
from recurring_planner.db.config import engine as default_engine

logger = logging.getLogger(__name__)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create all tables in the database."""
    bind = bind or default_engine
    logger.info("Creating all tables...")
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())
