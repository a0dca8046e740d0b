"""Client identifier derivation for rate limiting.

The service runs behind a proxy/CDN, so the socket peer address is the proxy.
The first hop of ``X-Forwarded-For`` (or ``X-Real-IP``) identifies the caller.
"""

from __future__ import annotations

from typing import Mapping

FALLBACK_CLIENT_ID = "local"


def get_client_ip_from_headers(
    headers: Mapping[str, str],
    fallback: str = FALLBACK_CLIENT_ID,
) -> str:
    """Return the originating client address from forwarding headers.

    Args:
        headers: Request headers (case-insensitive mapping, e.g. Starlette Headers).
        fallback: Sentinel used when no usable address is present.

    Returns:
        The first address listed, or ``fallback``.

    Examples:
        >>> get_client_ip_from_headers({"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
        '1.2.3.4'
        >>> get_client_ip_from_headers({})
        'local'
    """

    forwarded = headers.get("x-forwarded-for") or headers.get("x-real-ip")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return fallback
