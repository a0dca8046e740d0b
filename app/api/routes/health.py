from __future__ import annotations

from fastapi import APIRouter

from app.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers and monitoring.

    Exempt from API key auth and rate limiting.
    """

    return {"status": "ok", "env": settings.app_env}
