"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_LIMIT = 60
DEFAULT_WINDOW_MS = 60_000


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        remaining: Requests left in the current window (0 when rejected).
        retry_after_seconds: Seconds until the window resets (0 when allowed).
    """

    allowed: bool
    remaining: int
    retry_after_seconds: int


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(
        self,
        identifier: str,
        scope: str,
        *,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitDecision:
        """Count a request for ``identifier`` under ``scope`` and decide on it.

        Args:
            identifier: Entity being limited (e.g., client IP address).
            scope: Action the budget applies to (e.g., ``"rag:search"``).
            limit: Maximum admitted requests per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitDecision describing whether the request was admitted.
        """
        raise NotImplementedError
