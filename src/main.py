"""Gram Shikayat FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the record store and the complaint engine
services.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.settings import settings
from src.api.router import api_router
from src.models.enums import ComplaintCategory
from src.services.errors import ComplaintEngineError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            settings.log_level,
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the complaint engine.

    On startup:
      1. Open the configured record store
      2. Build the complaint and technician services
      3. Seed demo data when enabled
      4. Store everything on ``app.state``

    On shutdown the record store is closed.
    """
    _configure_logging()
    logger.info(
        "app.startup",
        env=settings.env,
        store_backend=settings.store_backend,
        timezone=settings.timezone,
    )

    app.state.start_time = time.time()

    # -- 1. Record store ----------------------------------------------------
    from src.services.store import create_store

    store = create_store(
        settings.store_backend,
        redis_url=settings.redis_url,
        namespace=settings.redis_namespace,
    )
    app.state.store = store
    if not await store.ping():
        logger.warning("app.store_unreachable", backend=settings.store_backend)

    # -- 2. Engine services -------------------------------------------------
    from src.services.complaint_service import ComplaintService
    from src.services.technician_service import TechnicianService

    app.state.complaints = ComplaintService(
        store,
        tz=settings.tzinfo,
        retry_attempts=settings.optimistic_retry_attempts,
        recent_limit=settings.recent_complaints_limit,
    )
    app.state.technicians = TechnicianService(
        store,
        retry_attempts=settings.optimistic_retry_attempts,
    )
    logger.info("app.services_initialised")

    # -- 3. Demo data -------------------------------------------------------
    if settings.seed_demo_data:
        from src.data.seed import seed_demo_data

        result = await seed_demo_data(app.state.complaints, app.state.technicians)
        logger.info(
            "app.demo_data_seeded",
            technicians=result.technicians,
            complaints=result.complaints,
            skipped=result.skipped,
        )

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    await store.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gram Shikayat API",
    description=(
        "Gram Shikayat -- complaint portal for rural local government. "
        "Citizens file civic complaints, the panchayat office assigns them to "
        "field technicians and tracks them through to resolution."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

_AUTH_HEADERS = ["X-Gateway-Key", "X-User-Id", "X-User-Role", "X-User-Phone"]

# -- CORS middleware --------------------------------------------------------
# SECURITY: allow_credentials=True must NOT be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", *_AUTH_HEADERS],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization", *_AUTH_HEADERS],
    )

# -- Prometheus metrics -----------------------------------------------------
# Scraped from inside the cluster; hidden from the public schema in production.
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/api/v1/health"],
).instrument(app).expose(
    app,
    endpoint="/metrics",
    include_in_schema=not settings.is_production,
)

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


# -- Engine errors ---------------------------------------------------------


@app.exception_handler(ComplaintEngineError)
async def engine_error_handler(request: Request, exc: ComplaintEngineError) -> ORJSONResponse:
    """Render engine failures as ``{"error": code, "detail": message, ...}``."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "api.engine_error",
        path=request.url.path,
        error=exc.code,
        detail=exc.message,
    )
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "Gram Shikayat API",
        "description": "Complaint portal for rural local government",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "complaints": "/api/v1/complaints",
            "track": "/api/v1/complaints/track/{complaint_id}",
            "technicians": "/api/v1/technicians",
            "monthly_report": "/api/v1/reports/monthly",
            "dashboard": "/api/v1/reports/dashboard",
            "health": "/api/v1/health",
        },
        "categories": [c.value for c in ComplaintCategory],
    }

