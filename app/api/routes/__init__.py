from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.observations import router as observations_router
from app.api.routes.rag import router as rag_router

__all__ = ["health_router", "observations_router", "rag_router"]
