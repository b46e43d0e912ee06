"""
FastAPI Application Factory.

Creates the FastAPI application serving the data-store routes for one
SyncContext.
"""

import logging
from typing import Optional

from fastapi import FastAPI

from teamsync import __version__
from teamsync.api.routes import router
from teamsync.app_context import SyncContext

logger = logging.getLogger(__name__)


def create_app(
    context: Optional[SyncContext] = None,
    title: str = "teamsync API",
    description: str = "Synchronized workforce data-store core",
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: SyncContext served by the routes. May be attached later
            through app.state.sync_context (e.g. from a lifespan handler).
        title: API title for OpenAPI documentation.
        description: API description for OpenAPI documentation.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(title=title, description=description, version=__version__)
    app.state.sync_context = context
    app.include_router(router)
    logger.info("teamsync routes registered at /api")
    return app
