"""
teamsync - Entry Point.

Headless ASGI application for uvicorn execution.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000 --reload

Or run directly:
    python main.py

With TEAMSYNC_STORE_BASE_URL / TEAMSYNC_STORE_API_KEY set the core talks
to the remote document gateway; otherwise it runs on the in-process
store. The identity provider is the in-process one in both cases.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import uvicorn
from fastapi import FastAPI

from teamsync.api import create_app
from teamsync.app_context import create_context
from teamsync.core.config import get_settings
from teamsync.core.logging_config import setup_logging
from teamsync.store.http import HttpDocumentStore


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Owns the HTTP client and the SyncContext for the lifetime of the app.
    """
    logger = logging.getLogger(__name__)
    settings = get_settings()

    logger.info("Starting teamsync...")
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True) as client:
        if settings.is_store_configured():
            store = HttpDocumentStore(
                client,
                base_url=settings.store_base_url,
                api_key=settings.store_api_key.get_secret_value(),
                poll_interval=settings.poll_interval_seconds,
            )
            logger.info(f"Using document gateway at {settings.store_base_url}")
        else:
            store = None
            logger.warning("Document gateway not configured, using the in-process store")

        context = create_context(store=store, settings=settings)
        app.state.sync_context = context
        await context.start()

        yield

        logger.info("Shutting down teamsync...")
        await context.close()
        app.state.sync_context = None
        logger.info("Cleanup complete")


# Setup logging first
_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_dir)

app = create_app()
app.router.lifespan_context = lifespan


def main() -> None:
    """Run the application directly with uvicorn."""
    uvicorn.run(
        "main:app",
        host=_settings.server_host,
        port=_settings.server_port,
        log_level="warning",
        access_log=False,
    )


if __name__ == "__main__":
    main()
