import logging
import math

import jwt
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from budget_ledger.core.config import get_settings
from budget_ledger.core.security import decode_token


settings = get_settings()
logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    """Per-user bucket for authenticated calls, per-address otherwise."""
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            subject = decode_token(token.strip()).get("sub")
        except jwt.PyJWTError:
            subject = None
        if subject:
            return f"user:{subject}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.default_rate_limit],
    storage_uri=settings.redis_url or "memory://",
    enabled=settings.rate_limit_enabled,
)


def retry_after_seconds(exc: RateLimitExceeded) -> int:
    limit = getattr(exc, "limit", None)
    item = getattr(limit, "limit", None)
    if item is None:
        return 1
    return max(1, int(math.ceil(item.get_expiry())))


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = retry_after_seconds(exc)
    logger.warning("Rate limit exceeded on %s %s (%s)", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please slow down.",
            "kind": "rate_limited",
            "retryAfter": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
