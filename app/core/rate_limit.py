"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limited(scope, ...))`` only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.
- Independent budgets per action: each scope key counts separately.

Rate limiting strategy:
- Fixed window per ``scope:client-address`` pair.
- Client address is the first forwarded hop, or a constant sentinel.
- Rejections surface as HTTP 429 with a ``Retry-After`` hint.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import HTTPException, Request, status

from app.adapters.rate_limit.base import (
    DEFAULT_LIMIT,
    DEFAULT_WINDOW_MS,
    AbstractRateLimiter,
)
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.client_ip import get_client_ip_from_headers
from app.core.config import settings
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

# Per-route budgets: scope -> (limit, window_ms)
ROUTE_LIMITS: dict[str, tuple[int, int]] = {
    "observations:enhance": (20, 60_000),
    "rag:search": (120, 60_000),
    "rag:chat": (60, 60_000),
    "rag:index:run": (10, 60_000),
}

_limiter: AbstractRateLimiter | None = None
_limiter_config: int | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The instance is cached in-module to preserve counters across requests.
    If the sweep configuration changes (primarily in tests), it is rebuilt.
    """

    global _limiter, _limiter_config

    retention_seconds = settings.app.rate_limit_retention_seconds
    if _limiter is None or _limiter_config != retention_seconds:
        _limiter = InMemoryFixedWindowRateLimiter(
            retention_ms=retention_seconds * 1000 if retention_seconds else None,
        )
        _limiter_config = retention_seconds

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next request starts from empty counters."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def rate_limited(
    scope: str,
    *,
    limit: int | None = None,
    window_ms: int | None = None,
) -> Callable[[Request], Awaitable[None]]:
    """Build a dependency enforcing the budget for ``scope``.

    Limit and window default to the ``ROUTE_LIMITS`` entry for the scope,
    then to 60 requests per minute.

    Usage:
        @router.post("/search", dependencies=[Depends(rate_limited("rag:search"))])

    Args:
        scope: Action key the budget applies to.
        limit: Override for the maximum requests per window.
        window_ms: Override for the window length in milliseconds.

    Raises:
        ValueError: If the resolved limit or window is not positive.
    """

    default_limit, default_window = ROUTE_LIMITS.get(scope, (DEFAULT_LIMIT, DEFAULT_WINDOW_MS))
    resolved_limit = limit if limit is not None else default_limit
    resolved_window = window_ms if window_ms is not None else default_window
    if resolved_limit < 1:
        raise ValueError("limit must be >= 1")
    if resolved_window < 1:
        raise ValueError("window_ms must be >= 1")

    async def enforce_rate_limit(request: Request) -> None:
        """Consume one request from the caller's budget or raise HTTP 429."""

        if not settings.app.rate_limit_enabled:
            return

        identifier = get_client_ip_from_headers(
            request.headers,
            fallback=settings.app.client_ip_fallback,
        )
        decision = get_rate_limiter().check(
            identifier,
            scope,
            limit=resolved_limit,
            window_ms=resolved_window,
        )
        if decision.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "scope": scope,
                    "client_hash": hash_identifier(identifier),
                    "remaining": decision.remaining,
                },
            )
            return

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "scope": scope,
                "client_hash": hash_identifier(identifier),
                "limit": resolved_limit,
                "window_ms": resolved_window,
                "retry_after_s": decision.retry_after_seconds,
            },
        )

        headers = {"Retry-After": str(decision.retry_after_seconds)}
        if settings.app.rate_limit_include_headers:
            headers["X-RateLimit-Limit"] = str(resolved_limit)
            headers["X-RateLimit-Remaining"] = str(decision.remaining)

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers=headers,
        )

    return enforce_rate_limit
