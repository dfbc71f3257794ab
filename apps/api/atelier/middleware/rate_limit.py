from __future__ import annotations

import math
import re
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from atelier.context import get_correlation_id
from atelier.core.config import get_settings

COMPLETION_OPERATIONS = frozenset({"chat", "analyze", "content", "financial-analysis", "automation-opportunities"})

_AI_TENANT_PATH_RE = re.compile(r"^/api/ai/tenants/(?P<tenant_id>[^/]+)/(?P<operation>[^/]+)/?$")


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float


class _TokenBucketLimiter:
    """Token buckets keyed by (user, tenant); refills continuously over the window."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], _Bucket] = {}

    def take(self, key: tuple[str, str], capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        per_second = capacity / float(window_seconds)
        with self._lock:
            bucket = self._buckets.setdefault(key, _Bucket(tokens=float(capacity), refilled_at=now))
            bucket.tokens = min(float(capacity), bucket.tokens + max(0.0, now - bucket.refilled_at) * per_second)
            bucket.refilled_at = now

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True, 0
            return False, max(1, math.ceil((1.0 - bucket.tokens) / per_second))

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()


class AiRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle AI completion calls; each POST to a completion operation costs one token."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or request.method.upper() != "POST":
            return await call_next(request)

        match = _AI_TENANT_PATH_RE.match(request.url.path)
        if match is None or match.group("operation") not in COMPLETION_OPERATIONS:
            return await call_next(request)

        allowed, retry_after = _limiter.take(
            (_resolve_user_id(request), match.group("tenant_id")),
            capacity=settings.rate_limit_ai_requests_per_minute,
            window_seconds=60,
        )
        if allowed:
            return await call_next(request)
        return _rate_limited_response(request, retry_after)


def _rate_limited_response(request: Request, retry_after: int) -> JSONResponse:
    correlation_id = (
        get_correlation_id()
        or getattr(request.state, "correlation_id", None)
        or request.headers.get("x-correlation-id")
        or str(uuid.uuid4())
    )
    response = JSONResponse(
        status_code=429,
        content={
            "code": "rate_limited",
            "message": "Too many AI requests",
            "details": {"retry_after_seconds": retry_after},
            "correlation_id": correlation_id,
        },
    )
    response.headers["Retry-After"] = str(retry_after)
    response.headers["X-Correlation-Id"] = correlation_id
    return response


def _resolve_user_id(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return "anonymous"

    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(auth_header[len("Bearer ") :], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return "anonymous"
    subject = payload.get("sub")
    return str(subject) if subject is not None else "anonymous"


def reset_rate_limiter() -> None:
    _limiter.clear()
