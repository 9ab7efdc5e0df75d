"""
Taskboard Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers; the
       lifespan handler owns logging setup, the reminder scheduler, the
       delivery sink and the database engine.
Who:   uvicorn (uvicorn taskboard.main:app) and the API tests.

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (logged, not fatal)
    3. Start the reminder scheduler (if enabled)

    Shutdown:
    1. Stop the scheduler
    2. Close the delivery sink (webhook HTTP client)
    3. Dispose the database engine

Error envelope:
    Every TaskboardError becomes
        {"success": false, "error": exc.code, "message": ..., "details": ...,
         "request_id": ...}
    with the status code from ERROR_STATUS (most specific class wins).
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from taskboard import __version__
from taskboard.config import settings
from taskboard.database import dispose_engine
from taskboard.exceptions import (
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    DeliveryError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RateLimitExceededError,
    TaskboardError,
    UnauthenticatedError,
    ValidationError,
)
from taskboard.middleware.logging import RequestLoggingMiddleware
from taskboard.middleware.rate_limit import RateLimitMiddleware
from taskboard.middleware.request_id import RequestIDMiddleware, request_id_var
from taskboard.routes import health, invites, notifications, projects, tasks
from taskboard.services.delivery import close_sink
from taskboard.services.reminder_scanner import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, to stdout.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party loggers are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Taskboard Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks and the inbox still work without a sink URL.
        logger.error("Configuration error: %s", str(e))

    start_scheduler()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Taskboard Backend shutting down...")
    shutdown_scheduler()
    await close_sink()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

ERROR_STATUS: Dict[Type[TaskboardError], int] = {
    ValidationError: 400,
    ExpiredError: 400,
    InvalidStateError: 400,
    UnauthenticatedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    RateLimitExceededError: 429,
    DatabaseError: 500,
    DeliveryError: 503,
    CircuitBreakerOpenError: 503,
}


def status_for(exc: TaskboardError) -> int:
    """HTTP status of the closest mapped ancestor of exc's class."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def error_body(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    return {
        "success": False,
        "error": code,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        DatabaseError           → 500, generic message, context logged only
        RateLimitExceededError  → 429 + Retry-After
        CircuitBreakerOpenError → 503 + Retry-After
        TaskboardError (base)   → ERROR_STATUS lookup
        Exception (fallback)    → 500, never leaks internals
    """

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body(exc.code, "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=error_body(exc.code, exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=503,
            content=error_body(exc.code, exc.message, exc.context),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(TaskboardError)
    async def handle_taskboard_error(request: Request, exc: TaskboardError):
        status_code = status_for(exc)
        rid = request_id_var.get("")
        if status_code >= 500:
            logger.error("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        else:
            logger.info("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=status_code,
            content=error_body(exc.code, exc.message, exc.context),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Taskboard API",
        description=(
            "Project collaboration backend: invitations, membership and "
            "exactly-once task notifications."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(projects.router)
    app.include_router(invites.router)
    app.include_router(tasks.router)
    app.include_router(notifications.router)
    app.include_router(health.router)

    return app


app = create_app()
