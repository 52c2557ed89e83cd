"""
Request rate limiting (slowapi).

Endpoints that reach GeoGuessr get tighter limits than the ones that only
read the database.
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings


def get_rate_limit_key(request: Request) -> str:
    """
    Get the rate limit key for a request.

    Uses IP address, with fallback to X-Forwarded-For for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["60/minute"],
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)

UPSTREAM_LIMIT = "20/minute"  # Endpoints that may call GeoGuessr
GENERAL_LIMIT = "60/minute"
HEALTH_LIMIT = "120/minute"
