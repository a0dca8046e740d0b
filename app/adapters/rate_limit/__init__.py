"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start with
an in-memory limiter and later migrate to Redis or another shared store
without changing the API layer.
"""

from app.adapters.rate_limit.base import (
    DEFAULT_LIMIT,
    DEFAULT_WINDOW_MS,
    AbstractRateLimiter,
    RateLimitDecision,
)
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_WINDOW_MS",
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitDecision",
]
