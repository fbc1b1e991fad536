"""Main FastAPI application for the recurring planner."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from recurring_planner import __version__
from recurring_planner.config import ENVIRONMENT, LOG_LEVEL
from recurring_planner.db.init import init_db
from recurring_planner.errors import RecurrenceError, create_error_response
from recurring_planner.middleware.cors import add_cors_middleware
from recurring_planner.routers import patterns
from recurring_planner.utils.metrics import metrics_collector

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# HTTP status per engine error code
ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "UNAUTHORIZED": 403,
    "CONFIGURATION_ERROR": 409,
    "BATCH_COMMIT_FAILED": 500,
}

app = FastAPI(
    title="Recurring Planner API",
    description="Recurrence patterns materialized into dated planner tasks",
    version=__version__,
)

add_cors_middleware(app)
app.include_router(patterns.router, prefix="/api")


@app.exception_handler(RecurrenceError)
async def recurrence_error_handler(request: Request, exc: RecurrenceError):
    status_code = ERROR_STATUS.get(exc.code, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=status_code, content=create_error_response(exc))


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    await init_db()
    logger.info("Application startup complete.")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def metrics():
    """In-process engine counters."""
    return metrics_collector.get_metrics()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "recurring_planner.main:app",
        host="0.0.0.0",
        port=8000,
        reload=ENVIRONMENT == "development",
    )
