"""Errors the admin API reports to its callers.

Each class corresponds to one HTTP status (see ``PROBLEM_TYPES`` in
:mod:`clientvault.infra.fastapi.error_handlers`). ``message`` becomes the
response ``detail`` and is shown to staff as-is, so it stays short and free
of backend internals; the raw backend text goes in ``context["details"]``.

    >>> raise NotFoundError("File", "f-1", client_id="c-1")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "DomainError",
    "InternalError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationError",
]


class DomainError(Exception):
    """Root of the hierarchy.

    Attributes:
        message: Operator-facing text.
        context: snake_case keys with record ids, raw backend messages
            (``details``) or a remediation ``hint``.
        error_code: Stable code for programmatic handling; subclasses set a
            default and call sites may narrow it (``DB_ERROR``,
            ``STORAGE_DELETE_FAILED``).
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        if error_code is not None:
            self.error_code = error_code

    def __str__(self) -> str:
        if not self.context:
            return self.message
        pairs = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({pairs})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context!r})"


class NotFoundError(DomainError):
    """A client, document or file that is absent or already soft-deleted."""

    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: UUID | str, **scope: Any) -> None:
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        super().__init__(
            f"{resource_type} not found",
            {"resource_type": resource_type, "resource_id": self.resource_id, **scope},
        )


class BadRequestError(DomainError):
    """Missing or contradictory identifiers in the request."""

    error_code: str = "BAD_REQUEST"


class ValidationError(DomainError):
    """A field value breaks a record rule (blank name, negative amount).

    The reason alone is the message; the UI renders it next to the field.
    """

    error_code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, **extra: Any) -> None:
        self.field = field
        self.reason = reason
        super().__init__(reason, {"field": field, "reason": reason, **extra})


class AuthenticationError(DomainError):
    """No usable bearer credential.

    ``auth_error`` is the RFC 6750 code placed in ``WWW-Authenticate``:
    ``invalid_request`` for a missing or malformed header, ``invalid_token``
    when the auth service rejects it.
    """

    error_code: str = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str,
        auth_error: str = "invalid_token",
        error_code: str = "AUTHENTICATION_ERROR",
        context: dict[str, Any] | None = None,
    ) -> None:
        self.auth_error = auth_error
        super().__init__(message, context, error_code=error_code)


class AuthorizationError(DomainError):
    """Authenticated, but not allowed.

    Raised for allowlist misses, documents of a protected type, and
    permission-shaped backend refusals under caller-scoped privilege.
    """

    error_code: str = "FORBIDDEN"


class InvalidStateError(DomainError):
    """A stored row that cannot be acted on, e.g. a file without a path."""

    error_code: str = "INVALID_STATE"


class InternalError(DomainError):
    error_code: str = "INTERNAL_ERROR"
