"""Correlation of one admin request across its backend calls.

Every HTTP request gets an ``X-Request-ID`` (the caller's, when it is a
UUID, otherwise a fresh one). The id, method and path are bound into the
structlog context so each deletion step logged during the request carries
them, and the id is echoed on the response and copied into 5xx problem
bodies as ``correlation_id``.
"""

from __future__ import annotations

import time
import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "X-Request-ID"

_HEADER_KEY = REQUEST_ID_HEADER.lower().encode("latin-1")
_BOUND_KEYS = ("request_id", "http_method", "http_path")

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

logger = structlog.get_logger(__name__)


def get_request_id() -> str:
    """Id of the request being served, or an empty string outside one."""
    return request_id_ctx.get()


def resolve_request_id(raw: str | None) -> str:
    """Accept a caller-supplied UUID, otherwise mint a new UUID4."""
    if raw:
        try:
            return str(uuid.UUID(raw))
        except ValueError:
            pass
    return str(uuid.uuid4())


class RequestIdMiddleware:
    """Pure ASGI middleware; non-HTTP scopes pass through untouched."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        supplied = dict(scope.get("headers", [])).get(_HEADER_KEY, b"").decode("latin-1")
        request_id = resolve_request_id(supplied)
        status_code = 500
        started = time.perf_counter()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = [*message.get("headers", []), (_HEADER_KEY, request_id.encode())]
                message = {**message, "headers": headers}
            await send(message)

        token = request_id_ctx.set(request_id)
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            http_method=scope.get("method", ""),
            http_path=scope.get("path", ""),
        )
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            logger.info(
                "request_completed",
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)
            request_id_ctx.reset(token)
