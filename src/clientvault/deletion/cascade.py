"""Cascade deletion service for files, custom documents and clients.

Each operation is one linear pass in a fixed order:

1. Resolve and validate the target (and collect dependent files)
2. Remove physical objects from storage
3. Delete database rows, children before parents

Storage goes first because a row whose object is gone is visible and
recoverable, whereas an object whose row is gone can no longer be found.
Row deletion is attempted as a hard delete and falls back to a soft delete
(``deleted_at = now``) per table, so restrictive foreign keys or row-level
policies degrade to an auditable marker instead of a failure.

Nothing here is atomic. Every step after resolution is idempotent, so the
caller retries by invoking the same operation again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from clientvault.deletion.resolver import RecordResolver
from clientvault.deletion.storage_remover import StorageRemover
from clientvault.infra.auth.privilege import WriteFailure
from clientvault.infra.backend.errors import BackendError
from clientvault.infra.observability import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from clientvault.infra.auth.privilege import PrivilegedBackend
    from clientvault.infra.backend.query import TableQuery

logger = get_logger(__name__)

DEFAULT_STORAGE_BATCH_SIZE = 100

# Child-first order for client-wide deletion: (table, column matched on client id).
CLIENT_CASCADE: tuple[tuple[str, str], ...] = (
    ("files", "client_id"),
    ("client_documents", "client_id"),
    ("client_payments", "client_id"),
    ("client_ownerships", "client_id"),
    ("clients", "id"),
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CascadeDeletionResult:
    """Result of a cascade deletion.

    Attributes:
        removed_files: Number of file rows targeted for removal.
        tables_processed: Tables whose rows were deleted, in order.
        soft_deleted_tables: Tables where the hard delete failed and rows were
            only marked with ``deleted_at``.
    """

    removed_files: int = 0
    tables_processed: list[str] = field(default_factory=list)
    soft_deleted_tables: list[str] = field(default_factory=list)


class CascadeDeletionService:
    """Orchestrates storage and row deletion for one request.

    Args:
        backend: Privileged backend; its privilege decides 403 vs 500 on
            permission-shaped failures.
        storage_batch_size: Max paths per storage call for client-wide
            deletion.
        clock: Source of the soft-delete timestamp.
    """

    def __init__(
        self,
        backend: PrivilegedBackend,
        *,
        storage_batch_size: int = DEFAULT_STORAGE_BATCH_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._client = backend.client
        self._resolver = RecordResolver(backend)
        self._storage = StorageRemover(backend)
        self._storage_batch_size = storage_batch_size
        self._clock = clock

    async def delete_file(self, file_id: str, client_id: str) -> CascadeDeletionResult:
        """Remove a file's object and soft-delete its row.

        An existing ``deleted_at`` is preserved so a repeated call leaves the
        row exactly as the first call did.
        """
        log = logger.bind(file_id=file_id, client_id=client_id, elevated=self._backend.elevated)
        log.info("file_deletion_started")

        record = await self._resolver.file(file_id, client_id)
        await self._storage.remove([record.stored_object])

        deleted_at = record.deleted_at or self._timestamp()
        try:
            await (
                self._client.table("files")
                .eq("id", file_id)
                .eq("client_id", client_id)
                .update({"deleted_at": deleted_at})
            )
        except BackendError as exc:
            log.warning("file_soft_delete_failed", error=exc.message)
            raise self._backend.write_failure(WriteFailure.DB_UPDATE, exc.message) from exc

        result = CascadeDeletionResult(removed_files=1, tables_processed=["files"])
        result.soft_deleted_tables.append("files")
        log.info("file_deletion_completed")
        return result

    async def delete_document(self, document_id: str, client_id: str) -> CascadeDeletionResult:
        """Remove a custom document, its files' objects and all their rows.

        Raises:
            AuthorizationError: The document is predefined, or a write was
                refused under caller-scoped privilege.
        """
        log = logger.bind(
            document_id=document_id,
            client_id=client_id,
            elevated=self._backend.elevated,
        )
        log.info("document_deletion_started")

        await self._resolver.deletable_document(document_id, client_id)
        files = await self._resolver.document_files(document_id, client_id)
        await self._storage.remove(f.stored_object for f in files)

        now = self._timestamp()
        result = CascadeDeletionResult(removed_files=len(files))
        await self._delete_rows(
            "files",
            {"client_id": client_id, "client_document_id": document_id},
            now,
            result,
        )
        await self._delete_rows(
            "client_documents",
            {"id": document_id, "client_id": client_id},
            now,
            result,
        )

        log.info(
            "document_deletion_completed",
            removed_files=result.removed_files,
            soft_deleted_tables=result.soft_deleted_tables,
        )
        return result

    async def delete_client(self, client_id: str) -> CascadeDeletionResult:
        """Remove a client with all files, documents, payments and ownerships."""
        log = logger.bind(client_id=client_id, elevated=self._backend.elevated)
        log.info("cascade_deletion_started")

        await self._resolver.client(client_id)
        files = await self._resolver.client_files(client_id)
        await self._storage.remove(
            (f.stored_object for f in files),
            batch_size=self._storage_batch_size,
        )

        now = self._timestamp()
        result = CascadeDeletionResult(removed_files=len(files))
        for table, column in CLIENT_CASCADE:
            await self._delete_rows(table, {column: client_id}, now, result)

        log.info(
            "cascade_deletion_completed",
            removed_files=result.removed_files,
            tables_processed=result.tables_processed,
            soft_deleted_tables=result.soft_deleted_tables,
        )
        return result

    async def _delete_rows(
        self,
        table: str,
        match: dict[str, str],
        now: str,
        result: CascadeDeletionResult,
    ) -> None:
        """Hard-delete matching rows, falling back to a soft delete.

        Raises:
            AuthorizationError | InternalError: Both attempts failed.
        """
        try:
            await self._filtered(table, match).delete()
        except BackendError as hard_exc:
            logger.warning(
                "hard_delete_fell_back_to_soft_delete",
                table=table,
                error=hard_exc.message,
            )
            try:
                await self._filtered(table, match).update({"deleted_at": now})
            except BackendError as soft_exc:
                logger.error(
                    "soft_delete_failed",
                    table=table,
                    error=soft_exc.message,
                    elevated=self._backend.elevated,
                )
                message = soft_exc.message or hard_exc.message
                raise self._backend.write_failure(WriteFailure.DB_WRITE, message) from soft_exc
            result.soft_deleted_tables.append(table)
        result.tables_processed.append(table)

    def _filtered(self, table: str, match: dict[str, str]) -> TableQuery:
        query = self._client.table(table)
        for column, value in match.items():
            query = query.eq(column, value)
        return query

    def _timestamp(self) -> str:
        return self._clock().isoformat()
