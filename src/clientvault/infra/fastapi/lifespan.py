"""Application lifespan: logging setup and the shared backend transport."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx

from clientvault.infra.backend.settings import get_backend_settings
from clientvault.infra.observability import configure_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def backend_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging and open one ``httpx.AsyncClient`` for the app.

    Every backend client built during a request reuses
    ``app.state.http_client``. A client already placed on the state (tests
    install one over a mock transport) is reused and left open.
    """
    configure_logging()

    existing = getattr(app.state, "http_client", None)
    if existing is not None:
        yield
        return

    settings = get_backend_settings()
    client = httpx.AsyncClient(timeout=settings.timeout_seconds)
    app.state.http_client = client
    logger.info("backend_http_client_opened", extra={"timeout": settings.timeout_seconds})
    try:
        yield
    finally:
        await client.aclose()
        app.state.http_client = None
        logger.info("backend_http_client_closed")
