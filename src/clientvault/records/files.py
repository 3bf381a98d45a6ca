"""Uploading files to a client document and viewing them through signed links.

Objects are stored first, then their metadata row is inserted. Several
files may hang off one document; an upload never replaces an earlier one
because each object path carries a fresh random token:

    {client_id}/{document_id}/{uuid4}-{safe file name}

Viewing never exposes the bucket itself: the caller receives a signed URL
that expires after :data:`SIGNED_URL_TTL_SECONDS`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from clientvault.domain.exceptions import InternalError, NotFoundError
from clientvault.domain.records import CLIENT_FILES_BUCKET, safe_file_name
from clientvault.infra.backend.errors import BackendError
from clientvault.infra.observability import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from clientvault.infra.auth.privilege import PrivilegedBackend

logger = get_logger(__name__)

SIGNED_URL_TTL_SECONDS = 300
DEFAULT_MIME_TYPE = "application/octet-stream"
STORAGE_PROVIDER = "supabase"

FILE_COLUMNS = (
    "id, client_id, client_document_id, bucket, path, original_name, "
    "mime_type, size_bytes, created_at"
)

_UPLOAD_HINT = "Check the insert policy of the storage bucket"


@dataclass(frozen=True, slots=True)
class IncomingFile:
    """A file received from the caller, fully read into memory."""

    name: str
    content: bytes
    mime_type: str | None = None

    @property
    def content_type(self) -> str:
        return self.mime_type or DEFAULT_MIME_TYPE


@dataclass(frozen=True, slots=True)
class SignedFile:
    row: dict[str, Any]
    url: str
    expires_in: int = SIGNED_URL_TTL_SECONDS


def object_path(client_id: str, document_id: str, file_name: str, token: str) -> str:
    return f"{client_id}/{document_id}/{token}-{safe_file_name(file_name)}"


def _db_error(exc: BackendError) -> InternalError:
    return InternalError("DB error", context={"details": exc.message}, error_code="DB_ERROR")


def _upload_error(exc: BackendError, file_name: str) -> InternalError:
    message = exc.message.lower()
    if "bucket" in message and "not found" in message:
        return InternalError(
            f"Storage bucket '{CLIENT_FILES_BUCKET}' does not exist",
            context={"details": exc.message},
            error_code="STORAGE_BUCKET_MISSING",
        )
    return InternalError(
        "File upload failed",
        context={"details": exc.message, "file_name": file_name, "hint": _UPLOAD_HINT},
        error_code="STORAGE_UPLOAD_FAILED",
    )


class FileRepository:
    """Stores and reads client files with the caller's privilege.

    Args:
        backend: Caller-scoped backend.
        token_factory: Source of the random object-path token.
    """

    def __init__(
        self,
        backend: PrivilegedBackend,
        *,
        token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._client = backend.client
        self._new_token = token_factory

    async def upload(
        self,
        client_id: str,
        document_id: str,
        files: Sequence[IncomingFile],
    ) -> list[dict[str, Any]]:
        """Store each file under the document and record its metadata.

        Files are processed in order and processing stops at the first
        failure; files stored before it are kept.

        Raises:
            NotFoundError: The document is not a live document of the client.
            InternalError: Storage or metadata insert failed.
        """
        await self._require_document(client_id, document_id)
        bucket = self._client.storage(CLIENT_FILES_BUCKET)
        log = logger.bind(client_id=client_id, document_id=document_id)

        created = []
        for incoming in files:
            path = object_path(client_id, document_id, incoming.name, self._new_token())
            try:
                await bucket.upload(path, incoming.content, incoming.content_type)
            except BackendError as exc:
                log.warning("file_upload_failed", file_name=incoming.name, error=exc.message)
                raise _upload_error(exc, incoming.name) from exc

            values = {
                "client_id": client_id,
                "client_document_id": document_id,
                "storage_provider": STORAGE_PROVIDER,
                "bucket": CLIENT_FILES_BUCKET,
                "path": path,
                "original_name": incoming.name,
                "mime_type": incoming.content_type,
                "size_bytes": len(incoming.content),
            }
            try:
                row = await self._client.table("files").insert(values, FILE_COLUMNS)
            except BackendError as exc:
                # The object is stored; its path lets an operator find it.
                log.error("file_row_insert_failed", path=path, error=exc.message)
                raise InternalError(
                    "File uploaded but its record could not be saved",
                    context={"details": exc.message, "bucket": CLIENT_FILES_BUCKET, "path": path},
                    error_code="FILE_RECORD_FAILED",
                ) from exc
            log.info("file_uploaded", file_id=row.get("id"), size_bytes=len(incoming.content))
            created.append(row)
        return created

    async def signed_view(self, client_id: str, file_id: str) -> SignedFile:
        """Load a live file of the client and sign a short-lived read URL.

        Raises:
            NotFoundError: No live file with this id for the client.
            InternalError: The lookup or the signing failed.
        """
        try:
            row = await (
                self._client.table("files")
                .eq("id", file_id)
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .select_one(FILE_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("File", file_id, client_id=client_id)

        try:
            url = await self._client.storage(row["bucket"]).create_signed_url(
                row["path"], SIGNED_URL_TTL_SECONDS
            )
        except BackendError as exc:
            raise InternalError(
                "Could not create file link",
                context={"details": exc.message},
                error_code="SIGNED_URL_FAILED",
            ) from exc
        return SignedFile(row=row, url=url)

    async def _require_document(self, client_id: str, document_id: str) -> None:
        try:
            row = await (
                self._client.table("client_documents")
                .eq("id", document_id)
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .select_one("id")
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("Document", document_id, client_id=client_id)
