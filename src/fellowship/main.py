"""
Fellowship Platform API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database, Redis, rate limiter and Google client services
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints

Every service is created in the lifespan and kept on ``app.state``; request
handlers reach them through dependencies.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fellowship.api import api_router
from fellowship.core.config import settings
from fellowship.core.database import Database
from fellowship.core.google import GoogleClientFactory
from fellowship.core.rate_limit import RateLimiter
from fellowship.core.redis import close_redis, init_redis
from fellowship.core.scheduler import JobScheduler
from fellowship.modules.cohorts.jobs import register_cohort_jobs

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection (optional outside production)
    - Database connection
    - Background job scheduler
    """
    # Startup
    logger.info(f"Starting {settings.app_name} in {settings.python_env} mode...")

    # Initialize Redis
    app.state.redis = None
    try:
        app.state.redis = await init_redis(settings.redis_url)
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    app.state.rate_limiter = RateLimiter(app.state.redis)

    # Initialize Database
    app.state.database = Database(settings.database_url, echo=settings.database_echo)
    try:
        await app.state.database.connect()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    app.state.google = GoogleClientFactory(
        settings.google_client_id,
        settings.google_client_secret,
    )

    # Initialize Background Job Scheduler
    app.state.scheduler = JobScheduler()
    try:
        # Register jobs before starting the scheduler
        register_cohort_jobs(app.state.scheduler, app.state.database)

        await app.state.scheduler.start()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")

    # Stop the scheduler first (wait for running jobs)
    await app.state.scheduler.stop()
    logger.info("[OK] Background scheduler stopped")

    await app.state.google.aclose()
    await close_redis(app.state.redis)
    await app.state.database.dispose()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant fellowship management API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {"status": "ready"}


# ============================================
# Debug Endpoints (development only)
# ============================================


def require_development() -> None:
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Not Found")


@app.get("/debug/db", tags=["Debug"], dependencies=[Depends(require_development)])
async def debug_db(request: Request):
    """Test database connection."""
    try:
        async with request.app.state.database.session() as session:
            result = await session.execute(text("SELECT 1"))
            return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"], dependencies=[Depends(require_development)])
async def debug_redis(request: Request):
    """Test Redis connection."""
    redis_client = request.app.state.redis
    try:
        if redis_client:
            await redis_client.ping()
            return {"redis": "connected"}
        return {"redis": "not initialized"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


# These endpoints allow manual triggering of background jobs for testing
# and debugging purposes. In production, jobs run automatically on schedule.


@app.get("/debug/jobs", tags=["Debug"], dependencies=[Depends(require_development)])
async def list_jobs(request: Request):
    """
    List all registered background jobs and their status.

    Returns:
        List of job information including next run time and pause status.
    """
    return {"jobs": request.app.state.scheduler.list_jobs()}


@app.post(
    "/debug/jobs/{job_id}/trigger",
    tags=["Debug"],
    dependencies=[Depends(require_development)],
)
async def trigger_job(job_id: str, request: Request):
    """
    Manually trigger a background job for testing.

    Args:
        job_id: The ID of the job to trigger, e.g. ``cohorts_reconcile_statuses``

    Returns:
        Job execution result including status and any errors.

    Raises:
        HTTPException 400: If job_id is not found.
    """
    try:
        return await request.app.state.scheduler.trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/debug/jobs/{job_id}/pause", tags=["Debug"], dependencies=[Depends(require_development)])
async def pause_job_endpoint(job_id: str, request: Request):
    """Pause a scheduled background job. It stays registered."""
    success = request.app.state.scheduler.pause_job(job_id)
    return {"job_id": job_id, "paused": success}


@app.post(
    "/debug/jobs/{job_id}/resume",
    tags=["Debug"],
    dependencies=[Depends(require_development)],
)
async def resume_job_endpoint(job_id: str, request: Request):
    """Resume a paused background job."""
    success = request.app.state.scheduler.resume_job(job_id)
    return {"job_id": job_id, "resumed": success}
