"""taskmarket - task marketplace with dual-code completion verification."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from taskmarket.core.config import settings
from taskmarket.core.db_client import close_connection, init_db
from taskmarket.core.logging import configure_logfire, instrument_fastapi
from taskmarket.core.redis_client import redis_client
from taskmarket.interface.api_router import router as api_router
from taskmarket.services.dashboard_service import dashboard_cache


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity.

    Outside production Redis is optional: verification rate limiting fails open
    without it, so an unreachable server only logs a warning.

    Raises:
        ConnectionError: If Redis is unreachable in production
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    elif settings.is_production:
        raise ConnectionError("Redis is unreachable")
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


async def validate_startup_configuration() -> None:
    """Validate production credentials and external service connectivity.

    Exits the process with status 1 when a required credential is missing or a
    required service is unreachable.
    """
    logger.info("startup_validation_begin", extra={"environment": settings.environment})

    try:
        if settings.is_production:
            settings.require_credential("logfire_token", "Logfire")
            settings.require_credential("redis_url", "Redis")
            logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_redis_connectivity()

        logger.info("startup_validation_complete", extra={"status": "ok"})

    except (ValueError, ConnectionError) as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()
    await validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    dashboard_cache.start()
    yield
    # Shutdown
    dashboard_cache.stop()
    await redis_client.close()
    await close_connection()


app = FastAPI(
    title="taskmarket",
    description="Task marketplace with dual-code completion verification",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        content={
            "status": "healthy",
            "redis": redis_client.get_health_status(),
            "dashboard_cache": dashboard_cache.get_health_status(),
        },
        status_code=200,
    )
