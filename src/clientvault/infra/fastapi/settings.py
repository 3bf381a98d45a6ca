"""HTTP surface settings: OpenAPI metadata and the admin UI's CORS policy.

The admin UI authenticates with a bearer header, never with cookies, so
credentials stay disabled and origins may be a wildcard in development.

Environment Variables:
    APP_TITLE, APP_VERSION, APP_DEBUG: OpenAPI metadata and debug mode
    APP_DOCS_URL / APP_REDOC_URL / APP_OPENAPI_URL: Empty disables the page
    CORS_ALLOW_ORIGINS: Comma-separated admin UI origins
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ADMIN_UI_METHODS = ["GET", "POST", "PATCH", "OPTIONS"]
ADMIN_UI_HEADERS = ["Authorization", "Content-Type", "X-Request-ID"]


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _installed_version() -> str:
    try:
        return version("clientvault")
    except PackageNotFoundError:
        return "0.0.0"


class CORSSettings(BaseSettings):
    """Cross-origin policy for the browser-based admin UI (``CORS_`` prefix)."""

    model_config = SettingsConfigDict(env_prefix="CORS_", extra="ignore")

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(default_factory=lambda: list(ADMIN_UI_METHODS))
    allow_headers: list[str] = Field(default_factory=lambda: list(ADMIN_UI_HEADERS))
    allow_credentials: bool = False
    expose_headers: list[str] = Field(default_factory=lambda: ["X-Request-ID"])

    @field_validator(
        "allow_origins", "allow_methods", "allow_headers", "expose_headers", mode="before"
    )
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @model_validator(mode="after")
    def _reject_credentials_with_wildcard(self) -> CORSSettings:
        if self.allow_credentials and "*" in self.allow_origins:
            raise ValueError("CORS_ALLOW_CREDENTIALS requires explicit CORS_ALLOW_ORIGINS")
        return self


class AppSettings(BaseSettings):
    """FastAPI metadata for :func:`~clientvault.infra.fastapi.create_app` (``APP_`` prefix)."""

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    title: str = "Clientvault Admin API"
    version: str = Field(default_factory=_installed_version)
    description: str = "Client records, documents and cascading deletion for staff."
    docs_url: str | None = "/docs"
    redoc_url: str | None = "/redoc"
    openapi_url: str | None = "/openapi.json"
    debug: bool = False
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("docs_url", "redoc_url", "openapi_url", mode="before")
    @classmethod
    def _empty_disables(cls, value: Any) -> Any:
        return None if value == "" else value
