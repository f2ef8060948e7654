"""
FastAPI app exposing health checks and the HTTP trigger for the daily check.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from touchbase.config import settings
from touchbase.db.pool import db_pool
from touchbase.infrastructure.observability.logging import get_logger, setup_logging
from touchbase.routes import health, jobs

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool for the lifetime of the app when it is configured."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    if settings.SUPABASE_DB_URL:
        await db_pool.initialize()
    else:
        logger.warning("SUPABASE_DB_URL not configured, database pool not started")

    yield

    logger.info("Application shutting down")
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="TouchBase Daily Check",
    description="Daily reconciliation and AI suggestion pipeline",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(jobs.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
