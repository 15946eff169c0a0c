# backend/lineup_analytics/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Wires the analytics cache, push sink, data store and worker at startup
- Starts the worker when WORKER_ENABLED and stops it on shutdown
- Defines the health endpoints

The analytics results themselves are served by other services; this process
only exposes health and worker status.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lineup_analytics.config import settings
from lineup_analytics.database import SessionLocal, check_database_health, init_db
from lineup_analytics.services.cache import AnalyticsCache
from lineup_analytics.services.circuit_breaker import breaker_from_settings
from lineup_analytics.services.datastore import SqlAlchemyDataStore
from lineup_analytics.services.exceptions import WorkerStopTimeoutError
from lineup_analytics.services.push import build_push_sink
from lineup_analytics.services.worker import AnalyticsWorker, WorkerConfig
from lineup_analytics.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.db_auto_create_tables:
        init_db()

    cache = AnalyticsCache.from_settings(settings, logger=logging.getLogger("lineup_analytics.cache"))
    push_sink = build_push_sink(settings, logger=logging.getLogger("lineup_analytics.push"))
    data_store = SqlAlchemyDataStore(
        SessionLocal,
        min_lineups_for_portfolio=settings.min_lineups_for_portfolio,
        portfolio_window=timedelta(days=settings.portfolio_window_days),
    )
    worker = AnalyticsWorker(
        data_store,
        cache,
        push_sink=push_sink,
        config=WorkerConfig.from_settings(settings),
        breaker=breaker_from_settings("analytics-datastore", settings),
        logger=logging.getLogger("lineup_analytics.worker"),
    )

    app.state.cache = cache
    app.state.worker = worker

    if settings.worker_enabled:
        worker.start()
    else:
        logger.info("Analytics worker disabled (WORKER_ENABLED=false)")

    try:
        yield
    finally:
        if worker.is_running:
            try:
                # joins threads; keep it off the event loop
                await asyncio.to_thread(worker.stop)
            except WorkerStopTimeoutError as e:
                logger.error(f"Analytics worker did not shut down cleanly: {e}")
        cache.close()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Background analytics for lineup portfolios",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# HEALTH ENDPOINTS
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check(request: Request):
    """
    Comprehensive health check endpoint.

    Returns HTTP 503 if the database (critical) is unhealthy.
    Returns HTTP 200 with degraded status if the cache is unavailable or
    behind an open circuit breaker, or if the worker is not running while
    it is meant to be.
    """
    checks = {}
    critical_healthy = True
    overall_status = "healthy"

    # Check 1: Database (CRITICAL)
    database = check_database_health()
    checks["database"] = {**database, "critical": True}
    if database["status"] != "healthy":
        critical_healthy = False
        overall_status = "unhealthy"

    # Check 2: Redis cache (NON-CRITICAL, reads degrade to misses)
    cache: AnalyticsCache | None = getattr(request.app.state, "cache", None)
    if cache is None:
        checks["cache"] = {"status": "unknown", "critical": False}
    else:
        breaker = cache.breaker
        cache_healthy = cache.is_available and not breaker.is_open
        checks["cache"] = {
            "status": "healthy" if cache_healthy else "unhealthy",
            "critical": False,
            "circuit_breaker_state": breaker.state.value,
            "stats": cache.stats().to_dict(),
        }
        if not cache_healthy and overall_status == "healthy":
            overall_status = "degraded"

    # Check 3: Worker (NON-CRITICAL)
    worker: AnalyticsWorker | None = getattr(request.app.state, "worker", None)
    if worker is None:
        checks["worker"] = {"status": "unknown", "critical": False}
    else:
        running = worker.is_running
        checks["worker"] = {
            "status": "running" if running else "stopped",
            "critical": False,
            "enabled": settings.worker_enabled,
            "circuit_breaker_state": worker.breaker.state.value,
        }
        if settings.worker_enabled and not running and overall_status == "healthy":
            overall_status = "degraded"

    response_data = {
        "status": overall_status,
        "checks": checks,
    }

    if not critical_healthy:
        return JSONResponse(status_code=503, content=response_data)

    return response_data


@app.get("/health/live", tags=["Health"])
def liveness_check():
    """Liveness probe; succeeds whenever the process is up."""
    return {"status": "alive"}


@app.get("/health/worker", tags=["Health"])
def worker_status(request: Request):
    """Worker lifecycle state and counters for the current run."""
    worker: AnalyticsWorker | None = getattr(request.app.state, "worker", None)
    if worker is None:
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {
        "running": worker.is_running,
        "stats": worker.get_stats().to_dict(),
    }
