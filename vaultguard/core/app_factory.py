"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests and the excluded service handlers build the same wiring.
"""

from __future__ import annotations

from fastapi import FastAPI

from vaultguard.api.routes import health_router
from vaultguard.core.config import settings
from vaultguard.core.exception_handlers import setup_exception_handlers
from vaultguard.core.logging import configure_logging
from vaultguard.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="vaultguard",
        description=(
            "Abuse control for a single-user backend: failed-login lockout and "
            "per-caller write budgets backed by a durable counter store."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    return app
