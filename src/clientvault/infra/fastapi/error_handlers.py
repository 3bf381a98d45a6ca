"""RFC 7807 problem responses for every failure the admin API reports.

Each :class:`~clientvault.domain.exceptions.DomainError` subclass maps to
one status through ``PROBLEM_TYPES``. The admin UI shows ``detail``
verbatim, so it is the exception's message; ``context`` carries the raw
backend message (``details``) and, for permission failures under caller
scope, a remediation ``hint``. 5xx bodies add the request's
``correlation_id`` so an operator can find the matching log lines.

Anything sent back is scrubbed first: credential-named context keys are
dropped and tokens or connection strings inside text are masked.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from clientvault.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    DomainError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clientvault.infra.fastapi.middleware.request_id import get_request_id

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


class ProblemDetail(BaseModel):
    """Problem details body with the admin API's extension members."""

    type: str = Field(..., examples=["/errors/not-found", "/errors/forbidden"])
    title: str = Field(..., examples=["Resource Not Found", "Forbidden"])
    status: int = Field(..., ge=400, le=599)
    detail: str = Field(..., examples=["Storage delete forbidden"])
    instance: str | None = None
    error_code: str | None = Field(default=None, examples=["STORAGE_DELETE_FORBIDDEN"])
    context: dict[str, Any] | None = None
    correlation_id: str | None = None


@dataclass(frozen=True, slots=True)
class ProblemType:
    status: int
    slug: str
    title: str


# Most specific first; the DomainError entry catches anything unlisted.
PROBLEM_TYPES: dict[type[DomainError], ProblemType] = {
    AuthorizationError: ProblemType(403, "forbidden", "Forbidden"),
    NotFoundError: ProblemType(404, "not-found", "Resource Not Found"),
    BadRequestError: ProblemType(400, "bad-request", "Bad Request"),
    ValidationError: ProblemType(422, "validation-error", "Validation Error"),
    InvalidStateError: ProblemType(500, "invalid-state", "Invalid State"),
    InternalError: ProblemType(500, "internal-error", "Internal Server Error"),
    DomainError: ProblemType(400, "domain-error", "Bad Request"),
}

_DROPPED_KEYS = frozenset(
    {"password", "secret", "token", "access_token", "api_key", "apikey", "credential"}
)

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"postgres(?:ql)?://[^@\s]*@[^/\s]*"), "postgresql://[REDACTED]@[REDACTED]"),
    (re.compile(r"(?i)\bbearer\s+[\w\-.~+/]+=*"), "Bearer [REDACTED]"),
    (re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+"), "[REDACTED_JWT]"),
    (
        re.compile(r"(?i)\b(password|secret|token|api[_-]?key|apikey)\s*=\s*['\"]?[^'\"\s&]+['\"]?"),
        r"\1=[REDACTED]",
    ),
)


def redact_sensitive_strings(text: str) -> str:
    """Mask connection strings, bearer tokens, JWTs and ``key=value`` secrets."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return redact_sensitive_strings(value)
    if isinstance(value, dict):
        return _scrub_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scrub(item) for item in value]
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return redact_sensitive_strings(str(value))


def _scrub_context(context: dict[str, Any] | None) -> dict[str, Any] | None:
    if not context:
        return None
    scrubbed = {
        key: _scrub(value) for key, value in context.items() if key.lower() not in _DROPPED_KEYS
    }
    return scrubbed or None


def _problem_response(problem: ProblemDetail, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


def problem_type_for(exc: DomainError) -> ProblemType:
    for exc_type, problem_type in PROBLEM_TYPES.items():
        if isinstance(exc, exc_type):
            return problem_type
    return PROBLEM_TYPES[DomainError]


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render any domain error other than authentication failures."""
    kind = problem_type_for(exc)
    correlation_id = None
    if kind.status >= 500:
        correlation_id = get_request_id() or "unknown"
        logger.error(
            "request_failed",
            extra={
                "path": request.url.path,
                "error_code": exc.error_code,
                "details": redact_sensitive_strings(str(exc.context.get("details", ""))),
            },
        )
    problem = ProblemDetail(
        type=f"/errors/{kind.slug}",
        title=kind.title,
        status=kind.status,
        detail=redact_sensitive_strings(exc.message),
        instance=request.url.path,
        error_code=exc.error_code,
        context=_scrub_context(exc.context),
        correlation_id=correlation_id,
    )
    return _problem_response(problem)


async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """401 with the RFC 6750 challenge. No context: nothing about the token is echoed."""
    problem = ProblemDetail(
        type=f"/errors/{exc.error_code.lower().replace('_', '-')}",
        title="Unauthorized",
        status=401,
        detail=exc.message,
        instance=request.url.path,
        error_code=exc.error_code,
    )
    challenge = f'Bearer realm="API", error="{exc.auth_error}"'
    return _problem_response(problem, headers={"WWW-Authenticate": challenge})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for malformed query parameters or JSON bodies, one entry per field."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    problem = ProblemDetail(
        type="/errors/request-validation-error",
        title="Request Validation Error",
        status=422,
        detail="Request validation failed",
        instance=request.url.path,
        error_code="REQUEST_VALIDATION_ERROR",
        context={"errors": errors},
    )
    return _problem_response(problem)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unexpected, e.g. missing backend configuration.

    The UI surfaces the raw message, so it is returned (redacted) instead
    of a generic text. Debug mode adds the exception type.
    """
    correlation_id = get_request_id() or "unknown"
    logger.exception(
        "unhandled_exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
    )
    context = {"exception_type": type(exc).__name__} if request.app.debug else None
    problem = ProblemDetail(
        type="/errors/internal-error",
        title="Internal Server Error",
        status=500,
        detail=redact_sensitive_strings(str(exc)) or "Unknown error",
        instance=request.url.path,
        error_code="INTERNAL_ERROR",
        context=context,
        correlation_id=correlation_id,
    )
    return _problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers; Starlette dispatches on the most specific class."""
    # Starlette's handler typing is narrower than the exception types used here.
    app.add_exception_handler(AuthenticationError, authentication_error_handler)  # type: ignore[arg-type]
    for exc_type in PROBLEM_TYPES:
        app.add_exception_handler(exc_type, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
