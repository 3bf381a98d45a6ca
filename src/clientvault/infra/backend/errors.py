"""Errors raised by the backend gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


class BackendError(Exception):
    """Raised when a REST, storage or auth call fails.

    Network failures are reported the same way as error responses so that
    callers can apply one fallback policy to both.

    Attributes:
        message: Message reported by the backend (or the transport error).
        status_code: HTTP status, or None for transport failures.
        code: Backend-specific error code (e.g. a Postgres SQLSTATE), if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.message = message or "Backend request failed"
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)

    @property
    def is_not_found(self) -> bool:
        """True when the backend says the target does not exist."""
        return "not found" in self.message.lower()

    @classmethod
    def from_response(cls, response: httpx.Response) -> BackendError:
        """Build an error from a non-2xx response body.

        REST errors carry ``message``/``code``; storage errors carry
        ``message``/``error``/``statusCode``; auth errors carry ``msg`` or
        ``error_description``.
        """
        body: dict[str, object] = {}
        if response.headers.get("content-type", "").startswith("application/json"):
            try:
                parsed = response.json()
            except ValueError:
                parsed = {}
            if isinstance(parsed, dict):
                body = parsed
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or response.text
            or response.reason_phrase
        )
        code = body.get("code") or body.get("error")
        return cls(
            str(message),
            status_code=response.status_code,
            code=str(code) if code is not None else None,
        )
