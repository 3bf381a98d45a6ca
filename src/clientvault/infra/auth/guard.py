"""Access guard: bearer token to identity, with optional email allowlist.

Request flow:
1. Extract ``Authorization: Bearer <token>``
2. Introspect the token against the backend auth endpoint
3. If an allowlist is configured, require the identity's email in it

Error flow:
- Missing header -> 401 (missing_token)
- Not a bearer scheme / empty token -> 401 (invalid_format)
- Introspection rejects the token -> 401 (invalid_token)
- Email not in non-empty allowlist -> 403
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from clientvault.domain.exceptions import AuthenticationError, AuthorizationError
from clientvault.domain.identity import AuthenticatedCaller, Identity
from clientvault.infra.backend.errors import BackendError

if TYPE_CHECKING:
    from clientvault.infra.backend.client import BackendClient

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an ``Authorization`` header value.

    The scheme is matched case-insensitively.

    Raises:
        AuthenticationError: If the header is missing, uses another scheme,
            or carries an empty token.
    """
    if not authorization:
        raise AuthenticationError(
            "Missing bearer token",
            auth_error="invalid_request",
            error_code="MISSING_TOKEN",
        )
    if not authorization.lower().startswith(_BEARER_PREFIX):
        raise AuthenticationError(
            "Authorization header must use Bearer scheme",
            auth_error="invalid_request",
            error_code="INVALID_FORMAT",
        )
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise AuthenticationError(
            "Bearer token is empty",
            auth_error="invalid_request",
            error_code="INVALID_FORMAT",
        )
    return token


class AccessGuard:
    """Resolves bearer credentials to staff identities.

    Args:
        introspection_client: Backend client holding the public (anon) key.
        allowlist: Lower-cased permitted emails. Empty admits any valid user.
    """

    def __init__(
        self,
        introspection_client: BackendClient,
        allowlist: frozenset[str] = frozenset(),
    ) -> None:
        self._introspection_client = introspection_client
        self._allowlist = allowlist

    async def authenticate(self, authorization: str | None) -> AuthenticatedCaller:
        """Authenticate and authorize the caller behind ``authorization``.

        Raises:
            AuthenticationError: Missing, malformed or rejected token.
            AuthorizationError: Identity not in the configured allowlist.
        """
        token = extract_bearer_token(authorization)

        try:
            user = await self._introspection_client.get_user(token)
        except BackendError as exc:
            logger.info(
                "token_introspection_failed",
                extra={"status_code": exc.status_code, "error": exc.message},
            )
            raise AuthenticationError(
                "Invalid token",
                auth_error="invalid_token",
                error_code="INVALID_TOKEN",
            ) from exc

        identity = Identity(user_id=user.id, email=user.email)
        self.check_allowlist(identity)
        return AuthenticatedCaller(identity=identity, access_token=token)

    def check_allowlist(self, identity: Identity) -> None:
        """Enforce the email allowlist when one is configured.

        Raises:
            AuthorizationError: If the allowlist is non-empty and excludes
                the identity's email.
        """
        if not self._allowlist:
            return
        if identity.normalized_email not in self._allowlist:
            logger.info("allowlist_rejected", extra={"user_id": identity.user_id})
            raise AuthorizationError("Forbidden", context={"user_id": identity.user_id})
