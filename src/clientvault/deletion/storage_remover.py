"""Physical removal of objects from the blob store.

Objects are grouped by bucket and removed with one call per bucket, or in
batches when a batch size is given (client-wide deletions can reach
hundreds of objects and the store caps paths per call).

A "not found" answer counts as success so a retry after a partial failure
does not get stuck on objects that are already gone. Any other failure
aborts the deletion; objects removed so far stay removed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clientvault.infra.auth.privilege import WriteFailure
from clientvault.infra.backend.errors import BackendError
from clientvault.infra.observability import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from clientvault.domain.records import StoredObject
    from clientvault.infra.auth.privilege import PrivilegedBackend

logger = get_logger(__name__)


def group_by_bucket(objects: Iterable[StoredObject]) -> dict[str, list[str]]:
    """Group object paths by bucket, skipping objects without bucket or path.

    Buckets keep first-seen order; duplicate paths are kept once.
    """
    grouped: dict[str, list[str]] = {}
    for obj in objects:
        if not obj.is_addressable:
            continue
        paths = grouped.setdefault(obj.bucket, [])
        if obj.path not in paths:
            paths.append(obj.path)
    return grouped


def chunked(paths: list[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of ``paths`` no longer than ``size``."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(paths), size):
        yield paths[start : start + size]


class StorageRemover:
    """Deletes stored objects with the privilege of ``backend``.

    Args:
        backend: Privileged backend used for storage calls.
    """

    def __init__(self, backend: PrivilegedBackend) -> None:
        self._backend = backend

    async def remove(
        self,
        objects: Iterable[StoredObject],
        *,
        batch_size: int | None = None,
    ) -> int:
        """Remove ``objects`` from storage.

        Args:
            objects: Locations to remove. Unaddressable entries are skipped.
            batch_size: Max paths per call. None issues one call per bucket.

        Returns:
            Number of distinct paths submitted for removal.

        Raises:
            AuthorizationError: Storage refused under caller-scoped privilege.
            InternalError: Storage failed under elevated privilege.
        """
        submitted = 0
        for bucket, paths in group_by_bucket(objects).items():
            batches = chunked(paths, batch_size) if batch_size else iter([paths])
            for batch in batches:
                await self._remove_batch(bucket, batch)
                submitted += len(batch)
        return submitted

    async def _remove_batch(self, bucket: str, paths: list[str]) -> None:
        try:
            await self._backend.client.storage(bucket).remove(paths)
        except BackendError as exc:
            if exc.is_not_found:
                logger.info(
                    "storage_objects_already_absent",
                    bucket=bucket,
                    count=len(paths),
                )
                return
            logger.warning(
                "storage_remove_failed",
                bucket=bucket,
                count=len(paths),
                elevated=self._backend.elevated,
                error=exc.message,
            )
            raise self._backend.write_failure(WriteFailure.STORAGE_DELETE, exc.message) from exc

        logger.info("storage_objects_removed", bucket=bucket, count=len(paths))
