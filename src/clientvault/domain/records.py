"""Record value objects consumed by the deletion core and the records API.

Rows arrive from the backend as loosely-typed dicts. The ``from_row``
constructors normalise them at the boundary so domain logic never deals
with missing keys, ``None`` strings or join results of varying shape.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

# Name of the predefined document type whose sort order custom documents borrow.
OTHER_DOCUMENT_TYPE_NAME = "otros"
UNSORTED_ORDER = 9999

# Bucket holding every uploaded client file.
CLIENT_FILES_BUCKET = "client-files"

_UNSAFE_FILE_NAME_CHARS = re.compile(r"[^\w.\-()\s]", re.ASCII)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def normalize_full_name(value: str) -> str:
    """Trim, collapse inner whitespace and capitalise each word.

    Example:
        >>> normalize_full_name("  ana   maría  LÓPEZ ")
        'Ana María López'
    """
    words = value.split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def collapse_spaces(value: str) -> str:
    """Trim and collapse runs of whitespace to one space."""
    return " ".join(value.split())


def safe_file_name(name: str) -> str:
    """Replace characters outside ``[A-Za-z0-9_.-()]`` and whitespace with ``_``.

    Example:
        >>> safe_file_name("contrato #1/final.pdf")
        'contrato _1_final.pdf'
    """
    return _UNSAFE_FILE_NAME_CHARS.sub("_", name)


def as_number(value: Any) -> float | None:
    """Coerce a numeric column (returned as number or string) to float.

    Non-finite and unparseable values become None.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_document_type(value: Any) -> dict[str, Any] | None:
    """Collapse a ``document_types`` join result to a single row or None.

    The REST join surfaces a to-one relation either as an object or as a
    one-element array depending on how the relationship was inferred.
    """
    if isinstance(value, list):
        return value[0] if value and isinstance(value[0], dict) else None
    if isinstance(value, dict):
        return value
    return None


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Location of a physical object in the blob store."""

    bucket: str
    path: str

    @property
    def is_addressable(self) -> bool:
        return bool(self.bucket and self.path)


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Metadata row for an uploaded file."""

    id: str
    client_id: str
    bucket: str
    path: str
    client_document_id: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> FileRecord:
        return cls(
            id=_text(row.get("id")),
            client_id=_text(row.get("client_id")),
            bucket=_text(row.get("bucket")),
            path=_text(row.get("path")),
            client_document_id=row.get("client_document_id"),
            deleted_at=row.get("deleted_at"),
        )

    @property
    def stored_object(self) -> StoredObject:
        return StoredObject(bucket=self.bucket, path=self.path)


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """A requirement (typed) or ad hoc (custom) document attached to a client."""

    id: str
    client_id: str
    document_type_id: str | None = None
    custom_name: str | None = None
    deleted_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DocumentRecord:
        return cls(
            id=_text(row.get("id")),
            client_id=_text(row.get("client_id")),
            document_type_id=row.get("document_type_id") or None,
            custom_name=row.get("custom_name"),
            deleted_at=row.get("deleted_at"),
        )

    @property
    def is_deletable(self) -> bool:
        """Only untyped documents with a custom name may be deleted.

        Predefined (typed) documents are requirements and must survive.
        """
        return self.document_type_id is None and bool((self.custom_name or "").strip())


@dataclass(frozen=True, slots=True)
class ClientRecord:
    """Minimal client row needed to drive a cascade."""

    id: str
    deleted_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ClientRecord:
        return cls(id=_text(row.get("id")), deleted_at=row.get("deleted_at"))
