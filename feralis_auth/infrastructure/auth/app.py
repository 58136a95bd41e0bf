"""
FastAPI application factory for the authentication service.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feralis_auth import __version__
from feralis_auth.application.config import AuthSettings
from feralis_auth.infrastructure.container import AuthContainer

from .endpoints import register_exception_handlers, router
from .middleware import RequestIDMiddleware, SecurityHeadersMiddleware

logger = logging.getLogger(__name__)


def create_app(
    settings: AuthSettings | None = None,
    container: AuthContainer | None = None,
    create_schema: bool = False,
) -> FastAPI:
    """
    Build the authentication API.

    Args:
        settings: Settings; loaded from the environment when omitted
        container: Pre-built container; built from ``settings`` when omitted
        create_schema: Create tables on startup (development and tests)
    """
    if container is None:
        container = AuthContainer(settings or AuthSettings.from_env())
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("Starting authentication service")
        if create_schema:
            await container.initialize_schema()
        container.start_token_cleanup()

        yield

        logger.info("Shutting down authentication service")
        await container.close()

    app = FastAPI(
        title="Feralis Authentication API",
        description="Password, MFA and refresh-token authentication",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.auth_container = container

    # Add middleware
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        max_age=3600,
    )

    app.include_router(router)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check() -> Any:
        """Health check endpoint."""
        return {"status": "healthy", "service": "authentication", "version": __version__}

    return app
