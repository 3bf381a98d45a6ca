"""Hosted backend connection settings.

Loaded from environment variables without a prefix because the variable
names are shared with the web front-end deployment.

Environment Variables:
    SUPABASE_URL / NEXT_PUBLIC_SUPABASE_URL: Backend project base URL
    SUPABASE_ANON_KEY / NEXT_PUBLIC_SUPABASE_ANON_KEY: Public (anon) API key
    SUPABASE_SERVICE_ROLE_KEY: Elevated key that bypasses row-level security
    ADMIN_EMAILS: Comma-separated allowlist of staff emails (empty = any user)
    STORAGE_REMOVE_BATCH_SIZE: Max object paths per storage removal call
    BACKEND_TIMEOUT_SECONDS: HTTP timeout for backend calls
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """Backend configuration loaded from environment variables.

    Example:
        >>> settings = BackendSettings(url="https://x.supabase.co", anon_key="anon")
        >>> settings.has_service_role
        False
        >>> settings.admin_email_allowlist
        frozenset()
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    url: str = Field(
        default="",
        validation_alias=AliasChoices("url", "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
        description="Backend project base URL",
    )
    anon_key: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices(
            "anon_key", "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
        ),
        description="Public API key used for token introspection and caller-scoped access",
    )
    service_role_key: str = Field(
        default="",
        repr=False,  # Security: never log the elevated key
        validation_alias=AliasChoices("service_role_key", "SUPABASE_SERVICE_ROLE_KEY"),
        description="Elevated API key that bypasses row-level security",
    )
    admin_emails: str = Field(
        default="",
        validation_alias=AliasChoices("admin_emails", "ADMIN_EMAILS"),
        description="Comma-separated allowlist of staff emails",
    )
    storage_remove_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        validation_alias=AliasChoices("storage_remove_batch_size", "STORAGE_REMOVE_BATCH_SIZE"),
        description="Max object paths per storage removal call",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("timeout_seconds", "BACKEND_TIMEOUT_SECONDS"),
        description="HTTP timeout for backend calls in seconds",
    )

    @property
    def has_service_role(self) -> bool:
        """True when an elevated credential is configured."""
        return bool(self.service_role_key.strip())

    @property
    def admin_email_allowlist(self) -> frozenset[str]:
        """Trimmed, lower-cased allowlist entries. Empty means no restriction."""
        return frozenset(
            email.strip().lower() for email in self.admin_emails.split(",") if email.strip()
        )

    def validate_connection(self) -> None:
        """Validate that the backend can be reached at all.

        Raises:
            ValueError: If the URL or anon key is missing.
        """
        if not self.url:
            raise ValueError("Missing env SUPABASE_URL")
        if not self.anon_key:
            raise ValueError("Missing env SUPABASE_ANON_KEY")


@lru_cache(maxsize=1)
def get_backend_settings() -> BackendSettings:
    """Get singleton BackendSettings instance.

    Clear cache with ``get_backend_settings.cache_clear()`` for testing.
    """
    return BackendSettings()
