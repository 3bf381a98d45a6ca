"""Clientvault backend gateway -- REST rows, object storage and token introspection."""

from clientvault.infra.backend.client import BackendClient, BackendUser, StorageBucket
from clientvault.infra.backend.errors import BackendError
from clientvault.infra.backend.query import QueryResult, TableQuery
from clientvault.infra.backend.settings import BackendSettings, get_backend_settings

__all__ = [
    "BackendClient",
    "BackendError",
    "BackendSettings",
    "BackendUser",
    "QueryResult",
    "StorageBucket",
    "TableQuery",
    "get_backend_settings",
]
