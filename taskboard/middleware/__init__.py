"""
Taskboard Backend — Middleware Package
========================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Access Log] → [Rate Limit] → [GZip] → [CORS] → Route

    - Request ID sets the correlation id that everything below reads.
    - Access log wraps the limiter so throttled (429) requests are logged too.
    - Rate limit rejects throttled callers before any route work happens.
"""
