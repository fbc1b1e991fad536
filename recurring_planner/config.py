"""Runtime configuration for the recurring planner."""
import os
from dotenv import load_dotenv

# Load environment variables but prioritize local development
load_dotenv()

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./recurring_planner.db")
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# Days materialized ahead of the furthest date a caller has asked for
LOOKAHEAD_DAYS = int(os.environ.get("RECURRENCE_LOOKAHEAD_DAYS", "90"))

# Upper bound on write operations per committed batch
MAX_BATCH_SIZE = int(os.environ.get("RECURRENCE_MAX_BATCH_SIZE", "500"))

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
