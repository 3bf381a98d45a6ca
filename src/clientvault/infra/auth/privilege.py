"""Privilege selection between elevated and caller-scoped backend clients.

When ``SUPABASE_SERVICE_ROLE_KEY`` is configured every deletion runs with
the elevated client, which bypasses row-level security. Otherwise the
caller's own token is forwarded and the external row-level and storage
policies decide what is allowed.

The choice is kept on :class:`PrivilegedBackend` because it decides how a
permission-shaped failure is reported: under caller scope it is most
likely a missing policy (403 with a remediation hint), under elevated
privilege it can only be a server fault (500).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from clientvault.domain.exceptions import AuthorizationError, DomainError, InternalError
from clientvault.infra.backend.client import BackendClient

if TYPE_CHECKING:
    import httpx

    from clientvault.domain.identity import AuthenticatedCaller
    from clientvault.infra.backend.settings import BackendSettings

logger = logging.getLogger(__name__)

_STORAGE_HINT = (
    "Configure a delete policy on the storage bucket or set "
    "SUPABASE_SERVICE_ROLE_KEY on the server"
)
_ROW_HINT = (
    "Configure row-level security to allow delete/update or set "
    "SUPABASE_SERVICE_ROLE_KEY on the server"
)


class WriteFailure(StrEnum):
    """Kinds of downstream write that can fail for lack of permission."""

    STORAGE_DELETE = "storage_delete"
    DB_WRITE = "db_write"
    DB_UPDATE = "db_update"

    @property
    def label(self) -> str:
        return {
            WriteFailure.STORAGE_DELETE: "Storage delete",
            WriteFailure.DB_WRITE: "DB write",
            WriteFailure.DB_UPDATE: "DB update",
        }[self]

    @property
    def hint(self) -> str:
        return _STORAGE_HINT if self is WriteFailure.STORAGE_DELETE else _ROW_HINT


@dataclass(frozen=True, slots=True)
class PrivilegedBackend:
    """A backend client together with the privilege it was created with."""

    client: BackendClient
    elevated: bool

    def write_failure(self, kind: WriteFailure, raw_message: str) -> DomainError:
        """Translate an unrecoverable write failure for the caller.

        Returns:
            AuthorizationError (403) under caller scope, InternalError (500)
            under elevated privilege. The raw backend message is kept in
            ``context["details"]``.
        """
        if self.elevated:
            return InternalError(
                f"{kind.label} failed",
                context={"details": raw_message},
                error_code=f"{kind.value.upper()}_FAILED",
            )
        return AuthorizationError(
            f"{kind.label} forbidden",
            context={"details": raw_message, "hint": kind.hint},
            error_code=f"{kind.value.upper()}_FORBIDDEN",
        )


class PrivilegeSelector:
    """Builds backend clients for a request.

    Args:
        settings: Backend connection settings.
        http_client: Shared transport for all clients built here.
    """

    def __init__(self, settings: BackendSettings, http_client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http_client = http_client

    @property
    def has_elevated_credential(self) -> bool:
        return self._settings.has_service_role

    def anonymous(self) -> BackendClient:
        """Client holding only the public key, used for token introspection."""
        self._settings.validate_connection()
        return self._build(self._settings.anon_key)

    def caller_scoped(self, caller: AuthenticatedCaller) -> PrivilegedBackend:
        """Client bound to the caller's own token (row-level security applies)."""
        self._settings.validate_connection()
        client = self._build(self._settings.anon_key, caller.access_token)
        return PrivilegedBackend(client=client, elevated=False)

    def select(self, caller: AuthenticatedCaller) -> PrivilegedBackend:
        """Elevated client when a service credential is configured, else caller-scoped."""
        if not self.has_elevated_credential:
            return self.caller_scoped(caller)
        if not self._settings.url:
            raise ValueError("Missing env SUPABASE_URL")
        logger.debug("elevated_client_selected", extra={"user_id": caller.identity.user_id})
        client = self._build(self._settings.service_role_key)
        return PrivilegedBackend(client=client, elevated=True)

    def _build(self, api_key: str, access_token: str | None = None) -> BackendClient:
        return BackendClient(
            self._settings.url,
            api_key,
            access_token,
            timeout=self._settings.timeout_seconds,
            client=self._http_client,
        )
