"""
Taskboard Backend — Notification Delivery Sinks
=================================================

What:  Pluggable delivery of committed notifications (log, HTTP webhook).
How:   NotificationService queues every notification it inserts on the
       session outbox. After the transaction commits, flush_outbox() hands
       each one to the configured sink.
Who:   get_db_session() and the reminder scanner call flush_outbox().
When:  Strictly after commit, so a sink never sees a rolled-back record.

Delivery contract:
    The durable notification row is the product of the core. A sink failure
    is logged and dropped: it never rolls back or fails the request that
    produced the notification. Clients that missed a push still find the
    notification through GET /api/notifications.

Sinks:
    LogSink      Default. Writes one INFO line per notification.
    WebhookSink  POSTs JSON to DELIVERY_WEBHOOK_URL with tenacity retries
                 (exponential backoff + jitter) behind a circuit breaker.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from taskboard.config import settings
from taskboard.exceptions import CircuitBreakerOpenError, DeliveryError
from taskboard.models.notification import Notification

logger = logging.getLogger(__name__)

OUTBOX_KEY = "notification_outbox"


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the webhook endpoint.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting all deliveries)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → On success: CLOSED (reset failure_count)
            → On failure: OPEN (reset timer)

    Process-local: each service instance keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if a delivery may proceed.

        Raises:
            CircuitBreakerOpenError if the circuit is OPEN and the recovery
            timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Delivery circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Delivery circuit breaker transitioning to CLOSED (endpoint recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Delivery circuit breaker returning to OPEN (test delivery failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Delivery circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Sinks
# ══════════════════════════════════════════════════════════════════════════

def serialize_notification(notification: Notification) -> Dict[str, Any]:
    """JSON payload shared by every sink."""
    return {
        "id": str(notification.id),
        "recipient_id": str(notification.recipient_id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "related_task_id": str(notification.related_task_id) if notification.related_task_id else None,
        "related_project_id": (
            str(notification.related_project_id) if notification.related_project_id else None
        ),
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationSink(ABC):
    """
    Abstract interface for pushing a committed notification to the outside.

    Contract:
        - deliver() receives a notification that is already committed.
        - Implementations wrap their own errors in DeliveryError (or raise
          CircuitBreakerOpenError); flush_outbox() logs and drops both.
    """

    @abstractmethod
    async def deliver(self, notification: Notification) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class LogSink(NotificationSink):
    """Default sink: a log line per notification."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "Notification %s (%s) delivered to user %s",
            notification.id,
            notification.type,
            notification.recipient_id,
        )

    async def health_check(self) -> bool:
        return True


class WebhookSink(NotificationSink):
    """
    Delivers notifications as JSON POSTs to a fixed URL.

    Error Handling Chain:
        POST fails → tenacity retries (retry_max_attempts with backoff)
        → All retries fail → record circuit breaker failure → DeliveryError
        → Threshold reached → further deliveries rejected instantly
        → Recovery timeout → one test delivery (HALF_OPEN)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "WebhookSink initialized for %s, circuit_breaker(threshold=%d, recovery=%ds)",
            url,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def deliver(self, notification: Notification) -> None:
        """
        POST one notification.

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            DeliveryError: Endpoint failed after all retry attempts
        """
        delivery_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            await self._post_with_retry(serialize_notification(notification), delivery_id)
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Webhook delivery of %s failed after retries: %s",
                delivery_id,
                notification.id,
                str(e),
            )
            raise DeliveryError(
                message="Webhook delivery failed after multiple attempts",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"delivery_id": delivery_id, "error_type": type(e).__name__},
            )
        self.circuit_breaker.record_success()

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post_with_retry(self, payload: Dict[str, Any], delivery_id: str) -> None:
        start_time = time.time()
        response = await self._get_client().post(
            self.url,
            json=payload,
            headers={"X-Delivery-ID": delivery_id},
        )
        response.raise_for_status()
        logger.info(
            "[%s] Webhook delivered notification %s in %.0fms",
            delivery_id,
            payload["id"],
            (time.time() - start_time) * 1000,
        )

    async def health_check(self) -> bool:
        return self.circuit_breaker.state != CircuitBreaker.OPEN

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ══════════════════════════════════════════════════════════════════════════
# Sink selection & outbox
# ══════════════════════════════════════════════════════════════════════════

_sink: Optional[NotificationSink] = None


def build_sink() -> NotificationSink:
    """Construct the sink named by settings.notification_sink."""
    if settings.notification_sink == "webhook":
        return WebhookSink(
            url=settings.delivery_webhook_url,
            timeout=settings.delivery_timeout_seconds,
        )
    return LogSink()


def get_sink() -> NotificationSink:
    global _sink
    if _sink is None:
        _sink = build_sink()
    return _sink


def set_sink(sink: Optional[NotificationSink]) -> None:
    """Replace the process-wide sink (tests, alternative deployments)."""
    global _sink
    _sink = sink


async def close_sink() -> None:
    """Release the sink's resources (called on shutdown)."""
    global _sink
    if isinstance(_sink, WebhookSink):
        await _sink.aclose()
    _sink = None


def enqueue(session: AsyncSession, notification: Notification) -> None:
    """Queue a freshly inserted notification for post-commit delivery."""
    session.info.setdefault(OUTBOX_KEY, []).append(notification)


def discard_outbox(session: AsyncSession) -> None:
    """Drop queued deliveries (the transaction that produced them rolled back)."""
    session.info.pop(OUTBOX_KEY, None)


async def flush_outbox(session: AsyncSession, sink: Optional[NotificationSink] = None) -> int:
    """
    Deliver every queued notification of a committed session.

    Returns:
        Number of notifications the sink accepted.
    """
    pending: List[Notification] = session.info.pop(OUTBOX_KEY, [])
    if not pending:
        return 0

    sink = sink or get_sink()
    delivered = 0
    for notification in pending:
        try:
            await sink.deliver(notification)
            delivered += 1
        except (DeliveryError, CircuitBreakerOpenError) as e:
            logger.warning(
                "Delivery of notification %s skipped: %s",
                notification.id,
                e.message,
            )
    return delivered
