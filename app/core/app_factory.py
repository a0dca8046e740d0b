"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.api.routes import health_router, observations_router, rag_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations

API_VERSION = "0.1.0"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Trellis API",
        description=(
            "School administration backend: AI-assisted observation note "
            "enhancement and retrieval-augmented search and chat over "
            "observations and evaluations. Requires X-API-Key plus the tenant "
            "headers set by the identity gateway; every AI endpoint is rate "
            "limited per client address."
        ),
        version=API_VERSION,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(observations_router, prefix="/v1")
    app.include_router(rag_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
