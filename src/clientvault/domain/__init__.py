"""Clientvault domain -- exceptions, identity and record value objects."""

from clientvault.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    DomainError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clientvault.domain.identity import AuthenticatedCaller, Identity
from clientvault.domain.records import (
    ClientRecord,
    DocumentRecord,
    FileRecord,
    StoredObject,
    normalize_document_type,
    normalize_full_name,
)

__all__ = [
    "AuthenticatedCaller",
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "ClientRecord",
    "DocumentRecord",
    "DomainError",
    "FileRecord",
    "Identity",
    "InternalError",
    "InvalidStateError",
    "NotFoundError",
    "StoredObject",
    "ValidationError",
    "normalize_document_type",
    "normalize_full_name",
]
