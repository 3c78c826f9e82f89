"""Rate limiting for the partnerpay API.

Tracking endpoints are hit by browsers behind the CDN, so requests are keyed
by the first forwarded address rather than the proxy's.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from partnerpay.settings import settings

CLICK_LIMIT = settings.click_rate_limit
CONVERSION_LIMIT = settings.conversion_rate_limit


def client_ip(request: Request) -> str | None:
    """Visitor address, honouring X-Forwarded-For and X-Real-IP."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def rate_limit_key(request: Request) -> str:
    return client_ip(request) or get_remote_address(request)


# Shared limiter; only enforced in production
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.default_rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.env == "production",
)
