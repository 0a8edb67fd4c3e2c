"""Per-client rate limiting for the marking API using slowapi.

Remote marking spends the shared Gemini quota, so it gets the tightest
limit; local marking is CPU only and planning is cheap.
"""

import json
from typing import Any, FrozenSet

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import get_settings
from app.utils.errors import SUGGEST_REDUCE_BATCH

DEFAULT_RETRY_AFTER_SECONDS = 60


def trusted_proxies(raw: str) -> FrozenSet[str]:
    """Parse the comma separated TRUSTED_PROXIES setting."""
    return frozenset(ip.strip() for ip in raw.split(",") if ip.strip())


def get_client_ip(request: Request) -> str:
    """
    Rate limit key: the client IP address.

    X-Forwarded-For is only honoured when the direct peer is a configured
    trusted proxy, so clients cannot pick their own key.
    """
    direct_ip: str = get_remote_address(request)

    if direct_ip in trusted_proxies(get_settings().trusted_proxies):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

    return direct_ip


# In-memory storage, keyed by client IP
limiter = Limiter(key_func=get_client_ip, default_limits=["200/minute"])


# Rate limit configurations for specific endpoints
RATE_LIMITS = {
    "mark_local": "60/minute",   # POST /api/mark/local - CPU only
    "mark_remote": "10/minute",  # POST /api/mark/remote - spends remote quota
    "plan": "100/minute",        # POST /api/batch/plan, /api/documents/profile - cheap
}


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Respond 429 with Retry-After and the limit that was exceeded.

    The body follows the marking error shape (detail + suggestion) with the
    retry delay added.
    """
    retry_after = getattr(exc, "retry_after", DEFAULT_RETRY_AFTER_SECONDS)

    error_body = {
        "detail": "Rate limit exceeded",
        "message": f"Too many requests. Please retry after {retry_after} seconds.",
        "suggestion": SUGGEST_REDUCE_BATCH,
        "retry_after": retry_after,
    }

    response = Response(
        content=json.dumps(error_body),
        status_code=429,
        media_type="application/json",
    )
    response.headers["Retry-After"] = str(retry_after)
    response.headers["X-RateLimit-Remaining"] = "0"

    limit = getattr(exc, "detail", None)
    if limit:
        response.headers["X-RateLimit-Limit"] = str(limit)

    return response


def get_limiter() -> Any:
    """Module-level Limiter shared by the app and the route decorators."""
    return limiter
