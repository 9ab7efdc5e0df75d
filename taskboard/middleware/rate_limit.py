"""
Taskboard Backend — Rate Limiting Middleware
==============================================

What:  Sliding window request limiter keyed by principal.
How:   Keeps the timestamps of recent requests per key in memory. The key is
       the X-User-ID header when present, otherwise the client IP, so users
       behind one NAT do not throttle each other.

Algorithm: Sliding Window Log
    1. Drop timestamps older than rate_limit_window
    2. If the remaining count >= rate_limit_requests → 429 with Retry-After
    3. Otherwise record the request and let it through

Scope:
    Process-local. Every worker enforces its own window; a shared limiter
    (Redis) is needed once the API runs as more than one process.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from taskboard.config import settings
from taskboard.deps import USER_ID_HEADER
from taskboard.exceptions import RateLimitExceededError
from taskboard.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window limiter (settings.rate_limit_requests per rate_limit_window)."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    # Sweep idle keys every N recorded requests
    CLEANUP_EVERY = 1000

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    @staticmethod
    def _key(request: Request) -> str:
        user_id = request.headers.get(USER_ID_HEADER)
        if user_id:
            return f"user:{user_id}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        key = self._key(request)
        now = time.time()
        window_start = now - settings.rate_limit_window

        recent = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = recent

        if len(recent) >= settings.rate_limit_requests:
            retry_after = int(recent[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                key,
                len(recent),
                settings.rate_limit_window,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": exc.code,
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)
        self._seen += 1
        if self._seen % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    def _cleanup_inactive(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d idle rate limit keys", len(inactive))
