"""
Rate Limiting Module

Implements rate limiting using slowapi to protect the search endpoint.
Returns HTTP 429 with retry-after header when limit exceeded.
"""
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings
from app.models.schemas import RateLimitResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60


def get_client_identifier(request: Request) -> str:
    """
    Get unique client identifier for rate limiting.
    Uses the operator header if present, otherwise falls back to IP address.
    """
    operator = request.headers.get("X-Operator")
    if operator:
        return f"operator:{operator}"

    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(key_func=get_client_identifier)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Custom handler for rate limit exceeded errors.
    Returns HTTP 429 with retry-after header.
    """
    retry_after = RATE_LIMIT_WINDOW_SECONDS

    logger.warning(
        f"Rate limit exceeded for {get_client_identifier(request)}: {exc.detail}"
    )

    response = RateLimitResponse(
        error="rate_limited",
        message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
        retry_after=retry_after,
    )

    return JSONResponse(
        status_code=429,
        content=response.model_dump(mode="json"),
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": settings.search_rate_limit,
        },
    )
