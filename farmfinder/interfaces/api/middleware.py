"""
API Middleware - Request/response processing.

Provides:
- Request ID tracking
- Response latency measurement
- Error handling with taxonomy codes
- Rate limiting
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from farmfinder.config.errors import ErrorCode, FarmFinderError

logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    # 400 Bad Request
    ErrorCode.SEARCH_INVALID_QUERY: 400,
    ErrorCode.VALIDATION_ERROR: 400,
    # 404 Not Found
    ErrorCode.NOT_FOUND: 404,
    # 429 Rate Limited
    ErrorCode.SECURITY_RATE_LIMITED: 429,
    # 503 Service Unavailable
    ErrorCode.SEARCH_RETRIEVAL_FAILED: 503,
    ErrorCode.STORAGE_CONNECTION_FAILED: 503,
    ErrorCode.STORAGE_READ_FAILED: 503,
    # 504 Gateway Timeout
    ErrorCode.SEARCH_TIMEOUT: 504,
}

# Paths that never count against the rate limit
_RATE_LIMIT_EXEMPT = frozenset({"/health"})


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_body(request: Request, code: str, message: str, details: dict[str, Any]) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message, "details": details},
        "request_id": _request_id(request),
    }


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach request ID for tracing across logs and responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LatencyMiddleware(BaseHTTPMiddleware):
    """Log request latency; requests slower than `slow_request_ms` log at warning."""

    def __init__(self, app: ASGIApp, slow_request_ms: float = 1000.0) -> None:
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
        log = logger.warning if elapsed_ms > self.slow_request_ms else logger.info
        log(
            "%s %s status=%d latency_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            _request_id(request),
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Convert FarmFinderError exceptions to structured JSON responses.

    Client-side errors (rejected queries) log at warning level; store and
    deadline failures log at error level so "search failed" stays visible.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except FarmFinderError as e:
            status = error_code_to_status(e.code)
            log = logger.warning if status < 500 else logger.error
            log(
                "%s: %s request_id=%s details=%s",
                e.code.value,
                e.message,
                _request_id(request),
                e.details,
            )
            return JSONResponse(
                status_code=status,
                content={"error": e.to_dict(), "request_id": _request_id(request)},
            )
        except Exception as e:
            logger.exception("Unhandled error: %s request_id=%s", str(e), _request_id(request))
            return JSONResponse(
                status_code=500,
                content=_error_body(
                    request, ErrorCode.INTERNAL_ERROR.value, "Internal server error", {}
                ),
            )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed one-minute window rate limiting per client IP."""

    def __init__(self, app: ASGIApp, requests_per_minute: int = 60) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.buckets: dict[str, dict[str, int]] = defaultdict(lambda: {"window": -1, "tokens": 0})

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in _RATE_LIMIT_EXEMPT:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time() // 60)
        bucket = self.buckets[client_ip]

        if bucket["window"] != window:
            bucket["window"] = window
            bucket["tokens"] = self.requests_per_minute

        if bucket["tokens"] <= 0:
            retry_after = 60 - int(time.time() % 60)
            logger.warning(
                "Rate limit exceeded for %s request_id=%s", client_ip, _request_id(request)
            )
            return JSONResponse(
                status_code=429,
                content=_error_body(
                    request,
                    ErrorCode.SECURITY_RATE_LIMITED.value,
                    f"Too many requests. Please retry after {retry_after} seconds.",
                    {"retry_after": retry_after},
                ),
                headers={"Retry-After": str(retry_after)},
            )

        bucket["tokens"] -= 1

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(bucket["tokens"])
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        return response


def error_code_to_status(code: ErrorCode) -> int:
    """Map error codes to HTTP status codes."""
    return _STATUS_BY_CODE.get(code, 500)
