"""Client documents: the display-ordered listing with live files, ad hoc
("Otros") documents and notes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from clientvault.domain.exceptions import InternalError, NotFoundError, ValidationError
from clientvault.domain.records import (
    OTHER_DOCUMENT_TYPE_NAME,
    UNSORTED_ORDER,
    collapse_spaces,
    normalize_document_type,
)
from clientvault.infra.backend.errors import BackendError
from clientvault.records.files import FILE_COLUMNS

if TYPE_CHECKING:
    from clientvault.infra.auth.privilege import PrivilegedBackend

DOCUMENT_COLUMNS = (
    "id, client_id, document_type_id, custom_name, notes, created_at, "
    "document_types(id, name, code, required, sort_order, is_default, is_active)"
)
TYPE_COLUMNS = "id, name, code, sort_order"


def _sort_key(document: dict[str, Any], other_order: int | None) -> tuple[int, str]:
    doc_type = document.get("document_type")
    if doc_type is not None and doc_type.get("sort_order") is not None:
        order = int(doc_type["sort_order"])
    elif document.get("custom_name"):
        order = other_order if other_order is not None else UNSORTED_ORDER
    else:
        order = UNSORTED_ORDER
    name = document.get("custom_name") or (doc_type or {}).get("name") or ""
    return order, name.lower()


def display_name(document: dict[str, Any]) -> str:
    """Custom name for ad hoc documents, type name otherwise."""
    doc_type = document.get("document_type") or {}
    return document.get("custom_name") or doc_type.get("name") or "Document"


def _shape(row: dict[str, Any]) -> dict[str, Any]:
    doc = {k: v for k, v in row.items() if k != "document_types"}
    doc["document_type"] = normalize_document_type(row.get("document_types"))
    doc["display_name"] = display_name(doc)
    doc["files"] = []
    return doc


def _db_error(exc: BackendError) -> InternalError:
    return InternalError("DB error", context={"details": exc.message}, error_code="DB_ERROR")


class DocumentRepository:
    """Reads and edits a client's live documents with the caller's privilege."""

    def __init__(self, backend: PrivilegedBackend) -> None:
        self._client = backend.client

    async def list_for_client(self, client_id: str) -> list[dict[str, Any]]:
        """Live documents sorted by type order then name, each with ``files``.

        Custom documents borrow the sort order of the "Otros" type so they
        appear where the predefined catch-all would.
        """
        try:
            types = await (
                self._client.table("document_types")
                .is_("deleted_at", None)
                .eq("is_active", True)
                .order("sort_order")
                .select(TYPE_COLUMNS)
            )
            documents = await (
                self._client.table("client_documents")
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .order("created_at")
                .select(DOCUMENT_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc

        other_order = next(
            (
                t.get("sort_order")
                for t in types.rows
                if (t.get("name") or "").strip().lower() == OTHER_DOCUMENT_TYPE_NAME
            ),
            None,
        )

        normalized = [_shape(row) for row in documents.rows]
        normalized.sort(key=lambda d: _sort_key(d, other_order))

        if normalized:
            await self._attach_files(client_id, normalized)
        return normalized

    async def create_custom(self, client_id: str, name: str) -> dict[str, Any]:
        """Add an ad hoc ("Otros") document named by the caller.

        The row carries no document type; only such documents can later be
        deleted.

        Raises:
            ValidationError: The name is blank.
            NotFoundError: No live client with this id.
        """
        alias = collapse_spaces(name)
        if not alias:
            raise ValidationError("custom_name", "Document name is required")
        await self._require_client(client_id)
        values = {
            "client_id": client_id,
            "document_type_id": None,
            "custom_name": alias,
            "notes": None,
        }
        try:
            row = await self._client.table("client_documents").insert(values, DOCUMENT_COLUMNS)
        except BackendError as exc:
            raise _db_error(exc) from exc
        return _shape(row)

    async def update_notes(
        self, client_id: str, document_id: str, notes: str | None
    ) -> dict[str, Any]:
        """Replace a live document's notes; blank notes are cleared.

        Raises:
            NotFoundError: No live document with this id for the client.
        """
        try:
            row = await (
                self._client.table("client_documents")
                .eq("id", document_id)
                .eq("client_id", client_id)
                .is_("deleted_at", None)
                .update_returning({"notes": (notes or "").strip() or None}, DOCUMENT_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("Document", document_id, client_id=client_id)
        return _shape(row)

    async def _require_client(self, client_id: str) -> None:
        try:
            row = await (
                self._client.table("clients")
                .eq("id", client_id)
                .is_("deleted_at", None)
                .select_one("id")
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        if row is None:
            raise NotFoundError("Client", client_id)

    async def _attach_files(self, client_id: str, documents: list[dict[str, Any]]) -> None:
        by_id = {doc["id"]: doc for doc in documents}
        try:
            files = await (
                self._client.table("files")
                .eq("client_id", client_id)
                .in_("client_document_id", list(by_id))
                .is_("deleted_at", None)
                .order("created_at", descending=True)
                .select(FILE_COLUMNS)
            )
        except BackendError as exc:
            raise _db_error(exc) from exc
        for row in files.rows:
            owner = by_id.get(row.get("client_document_id"))
            if owner is not None:
                owner["files"].append(row)
