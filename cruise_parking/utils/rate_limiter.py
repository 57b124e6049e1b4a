"""
Rate limits for the public API.

Counters live wherever RATELIMIT_STORAGE_URI points: memory:// for a single
process, redis://host:6379 once several API instances run behind the proxy.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings

DEFAULT_LIMIT = "100/minute"

RATE_LIMITS = {
    # Each call pulls the feed window and rebuilds the aggregate
    "sync": "6/minute",
    "order_write": "30/minute",
    "occupancy_read": "120/minute",
    "overlay": "60/minute",
}


def client_key(request: Request) -> str:
    """Original client address when the app sits behind a proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def get_rate_limit(operation: str) -> str:
    return RATE_LIMITS.get(operation, DEFAULT_LIMIT)


limiter = Limiter(
    key_func=client_key,
    storage_uri=settings.ratelimit_storage_uri,
    default_limits=[DEFAULT_LIMIT],
)
