"""Clientvault infra FastAPI -- error handlers, middleware, app factory."""

from clientvault.infra.fastapi.app_factory import create_app
from clientvault.infra.fastapi.error_handlers import (
    ProblemDetail,
    register_exception_handlers,
)
from clientvault.infra.fastapi.middleware.request_id import (
    RequestIdMiddleware,
    get_request_id,
)
from clientvault.infra.fastapi.settings import AppSettings, CORSSettings

__all__ = [
    "AppSettings",
    "CORSSettings",
    "ProblemDetail",
    "RequestIdMiddleware",
    "create_app",
    "get_request_id",
    "register_exception_handlers",
]
