"""Assembly of the admin API.

:func:`create_app` is the only place routers, middleware and error
handlers are wired together; ``clientvault.main`` calls it for uvicorn and
tests call it with their own settings.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from clientvault.api import clients_router, deletion_router
from clientvault.infra.fastapi._health import router as health_router
from clientvault.infra.fastapi.error_handlers import register_exception_handlers
from clientvault.infra.fastapi.lifespan import backend_lifespan
from clientvault.infra.fastapi.middleware.request_id import RequestIdMiddleware
from clientvault.infra.fastapi.settings import AppSettings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import APIRouter

    from clientvault.infra.fastapi.settings import CORSSettings

logger = logging.getLogger(__name__)


def _install_middleware(app: FastAPI, cors: CORSSettings) -> None:
    # Added last, so outermost: preflight responses and errors carry the request id too.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.allow_origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
        expose_headers=cors.expose_headers,
    )
    app.add_middleware(RequestIdMiddleware)


def create_app(
    settings: AppSettings | None = None,
    *,
    extra_routers: Sequence[APIRouter] = (),
) -> FastAPI:
    """Build the application: health, deletion and client record routes.

    Args:
        settings: OpenAPI metadata and CORS policy; read from the
            environment when omitted.
        extra_routers: Mounted after the built-in routers.
    """
    settings = settings or AppSettings()
    app = FastAPI(
        title=settings.title,
        version=settings.version,
        description=settings.description,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        debug=settings.debug,
        lifespan=backend_lifespan,
    )
    _install_middleware(app, settings.cors)
    register_exception_handlers(app)

    for router in (health_router, deletion_router, clients_router, *extra_routers):
        app.include_router(router)

    logger.info(
        "app_created",
        extra={"title": settings.title, "routes": len(app.routes), "debug": settings.debug},
    )
    return app
