"""Loading and validating the records a deletion will touch.

Lookups here deliberately do not filter on ``deleted_at``: a row that was
soft-deleted by an earlier, partially failed attempt must still be
resolvable so the retry can finish the job and sweep its storage objects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clientvault.domain.exceptions import (
    AuthorizationError,
    InternalError,
    InvalidStateError,
    NotFoundError,
)
from clientvault.domain.records import ClientRecord, DocumentRecord, FileRecord
from clientvault.infra.backend.errors import BackendError

if TYPE_CHECKING:
    from typing import Any

    from clientvault.infra.auth.privilege import PrivilegedBackend
    from clientvault.infra.backend.query import TableQuery

_FILE_COLUMNS = "id, client_id, client_document_id, bucket, path, deleted_at"
_DOCUMENT_COLUMNS = "id, client_id, document_type_id, custom_name, deleted_at"
_CLIENT_COLUMNS = "id, deleted_at"


async def _fetch_one(query: TableQuery, columns: str) -> dict[str, Any] | None:
    try:
        return await query.select_one(columns)
    except BackendError as exc:
        raise InternalError(
            "DB error",
            context={"details": exc.message, "table": query.table},
            error_code="DB_ERROR",
        ) from exc


async def _fetch_all(query: TableQuery, columns: str) -> list[dict[str, Any]]:
    try:
        result = await query.select(columns)
    except BackendError as exc:
        raise InternalError(
            "DB error",
            context={"details": exc.message, "table": query.table},
            error_code="DB_ERROR",
        ) from exc
    return result.rows


class RecordResolver:
    """Fetches deletion targets and their dependent files.

    Args:
        backend: Privileged backend used for lookups.
    """

    def __init__(self, backend: PrivilegedBackend) -> None:
        self._client = backend.client

    async def file(self, file_id: str, client_id: str) -> FileRecord:
        """Load a file owned by ``client_id``.

        Raises:
            NotFoundError: No such file for this client.
            InvalidStateError: The row has no storage location.
        """
        query = self._client.table("files").eq("id", file_id).eq("client_id", client_id)
        row = await _fetch_one(query, _FILE_COLUMNS)
        if row is None:
            raise NotFoundError("File", file_id, client_id=client_id)
        record = FileRecord.from_row(row)
        if not record.stored_object.is_addressable:
            raise InvalidStateError("Invalid file row", context={"file_id": file_id})
        return record

    async def deletable_document(self, document_id: str, client_id: str) -> DocumentRecord:
        """Load a custom document owned by ``client_id``.

        Raises:
            NotFoundError: No such document for this client.
            AuthorizationError: The document is predefined (typed) or has no
                custom name, and therefore may not be deleted.
        """
        query = (
            self._client.table("client_documents")
            .eq("id", document_id)
            .eq("client_id", client_id)
        )
        row = await _fetch_one(query, _DOCUMENT_COLUMNS)
        if row is None:
            raise NotFoundError("Document", document_id, client_id=client_id)
        record = DocumentRecord.from_row(row)
        if not record.is_deletable:
            raise AuthorizationError(
                "Forbidden",
                context={
                    "details": "Only custom documents (no predefined type, with a name) can be deleted",
                    "document_id": document_id,
                },
                error_code="DOCUMENT_NOT_DELETABLE",
            )
        return record

    async def client(self, client_id: str) -> ClientRecord:
        """Load a client, soft-deleted or not.

        Raises:
            NotFoundError: No such client.
        """
        query = self._client.table("clients").eq("id", client_id)
        row = await _fetch_one(query, _CLIENT_COLUMNS)
        if row is None:
            raise NotFoundError("Client", client_id)
        return ClientRecord.from_row(row)

    async def document_files(self, document_id: str, client_id: str) -> list[FileRecord]:
        """All files of a document, including soft-deleted ones."""
        query = (
            self._client.table("files")
            .eq("client_id", client_id)
            .eq("client_document_id", document_id)
        )
        return [FileRecord.from_row(row) for row in await _fetch_all(query, _FILE_COLUMNS)]

    async def client_files(self, client_id: str) -> list[FileRecord]:
        """All files of a client, including soft-deleted ones."""
        query = self._client.table("files").eq("client_id", client_id)
        return [FileRecord.from_row(row) for row in await _fetch_all(query, _FILE_COLUMNS)]
