"""Identity value object representing an authenticated staff member.

Pure domain object with no external dependencies. Immutable (frozen dataclass).
Built from the backend's token-introspection response by the access guard.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated staff member performing a request.

    Attributes:
        user_id: Identifier assigned by the identity provider.
        email: Email address used for allowlist comparison. Empty if absent.
    """

    user_id: str
    email: str = ""

    @property
    def normalized_email(self) -> str:
        """Lower-cased email for case-insensitive allowlist checks."""
        return self.email.strip().lower()


@dataclass(frozen=True, slots=True)
class AuthenticatedCaller:
    """An identity together with the bearer token it presented.

    The raw token is needed later to build a caller-scoped backend client
    when no elevated credential is configured.
    """

    identity: Identity
    access_token: str

    def __repr__(self) -> str:
        return f"AuthenticatedCaller(identity={self.identity!r}, access_token='***')"
