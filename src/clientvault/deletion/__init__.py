"""Clientvault deletion core -- resolve, remove storage, delete rows."""

from clientvault.deletion.cascade import (
    CLIENT_CASCADE,
    CascadeDeletionResult,
    CascadeDeletionService,
)
from clientvault.deletion.resolver import RecordResolver
from clientvault.deletion.storage_remover import StorageRemover, chunked, group_by_bucket

__all__ = [
    "CLIENT_CASCADE",
    "CascadeDeletionResult",
    "CascadeDeletionService",
    "RecordResolver",
    "StorageRemover",
    "chunked",
    "group_by_bucket",
]
