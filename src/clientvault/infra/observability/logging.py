"""structlog configuration for the admin API.

Deletion and records modules log snake_case events with the record ids
bound (``logger.bind(client_id=...)``); the request id, method and path
arrive from the request-id middleware through contextvars. Backend error
messages are logged verbatim, so values are scrubbed of bearer tokens and
JWTs as well as keys named like credentials.

Call :func:`configure_logging` once at startup; the application lifespan
does this.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from collections.abc import MutableMapping

Processor = structlog.types.Processor

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "authorization",
        "apikey",
        "api_key",
        "anon_key",
        "service_role_key",
        "access_token",
        "credential",
    }
)

REDACTED_VALUE: str = "***REDACTED***"

_TOKEN_IN_TEXT = re.compile(
    r"(?i)bearer\s+[\w\-.~+/]+=*|eyJ[\w-]+\.[\w-]+\.[\w-]+"
)

# httpx logs each request line (including REST filters) at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


class LoggingSettings(BaseSettings):
    """Log level and output format.

    Environment Variables:
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (any case)
        LOG_FORMAT: ``json``, ``console`` or ``auto`` (JSON in production)
        ENVIRONMENT: Deployment name consulted by ``auto``
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["auto", "json", "console"] = Field(default="auto", alias="LOG_FORMAT")
    environment: str = Field(default="development", alias="ENVIRONMENT")

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_level(cls, value: Any) -> str:
        level = str(value).upper()
        if level not in logging.getLevelNamesMapping() or level in ("NOTSET", "WARN", "FATAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @property
    def use_json_logs(self) -> bool:
        if self.log_format == "auto":
            return self.environment == "production"
        return self.log_format == "json"

    @property
    def log_level_int(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


class SensitiveDataProcessor:
    """Redact credential-named keys and scrub tokens out of string values.

    A key is sensitive when it is listed in ``SENSITIVE_FIELDS``, contains
    ``token``, or ends with ``_key`` (case-insensitive).
    """

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key, value in event_dict.items():
            if self._is_sensitive(key):
                event_dict[key] = REDACTED_VALUE
            elif isinstance(value, str):
                event_dict[key] = _TOKEN_IN_TEXT.sub(REDACTED_VALUE, value)
        return event_dict

    @staticmethod
    def _is_sensitive(key: str) -> bool:
        lowered = key.lower()
        return lowered in SENSITIVE_FIELDS or "token" in lowered or lowered.endswith("_key")


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Cached settings; ``get_logging_settings.cache_clear()`` in tests."""
    return LoggingSettings()


def build_processors(settings: LoggingSettings) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        SensitiveDataProcessor(),
    ]
    if settings.use_json_logs:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structlog and the stdlib root level.

    Safe to call more than once; the last call wins, including for
    module-level loggers already in use (they are not cached).
    """
    settings = settings or get_logging_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level_int),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(level=settings.log_level_int)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(settings.log_level_int, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.typing.WrappedLogger:
    """Lazy structlog logger carrying ``logger=name`` when a name is given.

    Nothing is built until the first log call, so module-level loggers
    pick up the configuration applied later by :func:`configure_logging`.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger=name)
