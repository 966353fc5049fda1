# app/main.py
"""
FastAPI application with mark-store lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import get_settings
from app.features.mail_triage import triage_router
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health
from app.services.infrastructure.kv_store import build_store

settings = get_settings()

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    app.state.store = build_store(settings.redis_url())
    app.state.triage_job = None

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    job = getattr(app.state, "triage_job", None)
    if job is not None:
        try:
            await job.close()
        except Exception as e:
            logger.error("Error closing triage job", error=str(e))
            shutdown_errors.append(f"Triage job: {e}")

    try:
        await app.state.store.close()
    except Exception as e:
        logger.error("Error closing mark store", error=str(e))
        shutdown_errors.append(f"Mark store: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="SES Mail Triage",
    description="Classifies back-office mail and imports job postings",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(triage_router)


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
