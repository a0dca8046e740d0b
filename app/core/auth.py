"""API key authentication and tenant context resolution.

Sessions are handled by a hosted identity provider in front of this service.
By the time a request reaches us it carries:
- ``X-API-Key``: shared key proving the call comes through the trusted gateway
- ``X-User-Id`` / ``X-User-Role`` / ``X-School-Id`` / ``X-District``: the
  resolved tenant context

Design principles:
- Dependency Injection: used via FastAPI Depends() for loose coupling
- Configuration-driven: keys managed via env vars, not hardcoded
- Testable: pure validation functions with minimal dependencies
"""

from __future__ import annotations

import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status
from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import hash_identifier
from app.schemas.tenant import Role, TenantContext

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If key is invalid or authentication is required
            but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_identifier(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        return

    if not x_api_key:
        logger.warning("auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc


async def get_tenant_context(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    x_user_role: Annotated[str | None, Header(alias="X-User-Role")] = None,
    x_school_id: Annotated[str | None, Header(alias="X-School-Id")] = None,
    x_district: Annotated[str | None, Header(alias="X-District")] = None,
) -> TenantContext:
    """Resolve the caller's tenant context from gateway headers.

    Raises:
        HTTPException: 401 when the context is missing or malformed.
    """
    try:
        return TenantContext(
            user_id=x_user_id or "",
            role=(x_user_role or "").upper(),
            school_id=x_school_id or "",
            district=x_district or None,
        )
    except ValidationError as exc:
        logger.info(
            "auth.tenant_unresolved",
            extra={"fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()]},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        ) from exc


def require_roles(*roles: Role) -> Callable[..., Awaitable[TenantContext]]:
    """Build a dependency that only admits tenants with one of ``roles``."""

    allowed = frozenset(roles)

    async def dependency(
        tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    ) -> TenantContext:
        if tenant.role not in allowed:
            logger.warning(
                "auth.forbidden_role",
                extra={"role": tenant.role.value, "allowed": sorted(r.value for r in allowed)},
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return tenant

    return dependency
