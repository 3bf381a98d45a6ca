"""FastAPI dependency functions for authentication and privilege selection.

Usage:
    from clientvault.infra.auth.dependencies import CurrentCaller, PrivilegedBackendDep

    @router.post("/files/{file_id}/delete")
    async def delete_file(caller: CurrentCaller, backend: PrivilegedBackendDep):
        ...
"""

from __future__ import annotations

from typing import Annotated

import httpx  # noqa: TC002 -- FastAPI resolves dependency annotations at runtime
from fastapi import Depends, Header, Request

from clientvault.domain.identity import AuthenticatedCaller
from clientvault.infra.auth.guard import AccessGuard
from clientvault.infra.auth.privilege import PrivilegedBackend, PrivilegeSelector
from clientvault.infra.backend.settings import BackendSettings, get_backend_settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared transport created by the application lifespan."""
    return request.app.state.http_client


def get_privilege_selector(
    settings: Annotated[BackendSettings, Depends(get_backend_settings)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> PrivilegeSelector:
    return PrivilegeSelector(settings, http_client)


def get_access_guard(
    settings: Annotated[BackendSettings, Depends(get_backend_settings)],
    selector: Annotated[PrivilegeSelector, Depends(get_privilege_selector)],
) -> AccessGuard:
    return AccessGuard(selector.anonymous(), settings.admin_email_allowlist)


async def get_authenticated_caller(
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedCaller:
    """Resolve the request's bearer token to an allowed staff identity.

    Raises:
        AuthenticationError: Missing, malformed or rejected token.
        AuthorizationError: Identity not in the allowlist.
    """
    return await guard.authenticate(authorization)


# Type alias for cleaner endpoint signatures
CurrentCaller = Annotated[AuthenticatedCaller, Depends(get_authenticated_caller)]


def get_privileged_backend(
    caller: CurrentCaller,
    selector: Annotated[PrivilegeSelector, Depends(get_privilege_selector)],
) -> PrivilegedBackend:
    """Elevated client if configured, else caller-scoped. Used by deletions."""
    return selector.select(caller)


def get_caller_scoped_backend(
    caller: CurrentCaller,
    selector: Annotated[PrivilegeSelector, Depends(get_privilege_selector)],
) -> PrivilegedBackend:
    """Always caller-scoped. Used by ordinary reads and edits."""
    return selector.caller_scoped(caller)


PrivilegedBackendDep = Annotated[PrivilegedBackend, Depends(get_privileged_backend)]
CallerScopedBackendDep = Annotated[PrivilegedBackend, Depends(get_caller_scoped_backend)]
