"""Clientvault infra auth -- access guard, privilege selection, FastAPI dependencies."""

from clientvault.infra.auth.dependencies import (
    CallerScopedBackendDep,
    CurrentCaller,
    PrivilegedBackendDep,
    get_authenticated_caller,
)
from clientvault.infra.auth.guard import AccessGuard, extract_bearer_token
from clientvault.infra.auth.privilege import (
    PrivilegedBackend,
    PrivilegeSelector,
    WriteFailure,
)

__all__ = [
    "AccessGuard",
    "CallerScopedBackendDep",
    "CurrentCaller",
    "PrivilegeSelector",
    "PrivilegedBackend",
    "PrivilegedBackendDep",
    "WriteFailure",
    "extract_bearer_token",
    "get_authenticated_caller",
]
