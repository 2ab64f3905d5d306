"""Shared rate limiter, keyed by client address.

In-memory storage: limits are per worker process. The Pub/Sub webhook gets
its own limit so a redelivery storm cannot starve the dashboard routes.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)
