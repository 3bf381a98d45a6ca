"""Clientvault records -- live client, document, file and history reads/writes."""

from clientvault.records.clients import PAGE_SIZE, ClientDetail, ClientPage, ClientRepository
from clientvault.records.documents import DocumentRepository
from clientvault.records.files import FileRepository, IncomingFile, SignedFile
from clientvault.records.history import OwnershipEntry, OwnershipRepository, PaymentRepository

__all__ = [
    "PAGE_SIZE",
    "ClientDetail",
    "ClientPage",
    "ClientRepository",
    "DocumentRepository",
    "FileRepository",
    "IncomingFile",
    "OwnershipEntry",
    "OwnershipRepository",
    "PaymentRepository",
    "SignedFile",
]
