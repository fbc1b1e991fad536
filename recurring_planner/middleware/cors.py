"""CORS configuration for the planner frontend."""
import logging
from typing import List

from fastapi.middleware.cors import CORSMiddleware

from recurring_planner.config import ENVIRONMENT, FRONTEND_URL

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def allowed_origins(environment: str = ENVIRONMENT, frontend_url: str = FRONTEND_URL) -> List[str]:
    """Production only admits the configured frontend; development adds the local dev servers."""
    if environment == "production":
        return [frontend_url]
    origins = list(DEV_ORIGINS)
    if frontend_url and frontend_url not in origins:
        origins.append(frontend_url)
    return origins


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    origins = allowed_origins()
    logger.info(f"CORS ({ENVIRONMENT}) allowed origins: {origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
