"""
Taskboard Backend — Health Check Route
========================================

What:  Health check endpoint for monitoring and load balancer health checks.
How:   Checks the database, the notification sink and the reminder scheduler.
Who:   Docker health checks, load balancers, monitoring.

    Status levels:
    - healthy:   All dependencies operational (HTTP 200)
    - degraded:  Sink circuit open or scheduler stopped (HTTP 200)
    - unhealthy: Database unreachable (HTTP 503)

    The sink and the scheduler are not critical: notifications are durable
    in the database and delivery or scanning catch up later.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from taskboard import __version__
from taskboard.database import engine
from taskboard.schemas.common import HealthResponse
from taskboard.services.delivery import CircuitBreaker, WebhookSink, get_sink
from taskboard.services.reminder_scanner import scheduler_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    delivery_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Delivery Sink ───────────────────────────────────────────────
    sink = get_sink()
    if isinstance(sink, WebhookSink) and sink.circuit_breaker.state == CircuitBreaker.OPEN:
        delivery_status = "circuit_open"
    elif not await sink.health_check():
        delivery_status = "unavailable"
    if delivery_status != "available" and overall == "healthy":
        overall = "degraded"

    # ── Check Scheduler ───────────────────────────────────────────────────
    scheduler = scheduler_status()
    if scheduler == "stopped" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        delivery=delivery_status,
        scheduler=scheduler,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
