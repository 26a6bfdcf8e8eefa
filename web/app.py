"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured.

Web routes are thin proxies to core APIs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from remote_compiler import __version__
from remote_compiler.builds.engine import BuildEngine
from remote_compiler.config import get_settings
from remote_compiler.credentials import CredentialStore
from remote_compiler.db import init_db
from web.routers import builds, config, health


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Initializes database tables, the build engine and the credential
    store on startup; cancels a running build on shutdown.
    """
    settings = get_settings()
    app.state.session_factory = init_db(settings.db_url)
    app.state.build_engine = BuildEngine(settings=settings)
    app.state.credential_store = CredentialStore.from_settings(settings)
    yield
    app.state.build_engine.cancel()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Remote Compiler API",
        description="HTTP API for starting, monitoring and canceling remote "
        "builds",
        version=__version__,
        lifespan=lifespan,
    )

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])

    return application


# Create the default application instance
app = create_app()
