"""Client record endpoints: list, profile, documents, files and history.

These always run with the caller-scoped backend so the database's
row-level policies apply. Soft-deleted rows are never returned.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clientvault.infra.auth.dependencies import CallerScopedBackendDep
from clientvault.records import (
    ClientRepository,
    DocumentRepository,
    FileRepository,
    IncomingFile,
    OwnershipEntry,
    OwnershipRepository,
    PaymentRepository,
)

Year = Annotated[int, Field(ge=1900, le=2100)]

router = APIRouter(prefix="/clients", tags=["clients"])


# -- Request / Response models ------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateClientRequest(_CamelModel):
    full_name: str
    phone: str


class UpdateClientRequest(_CamelModel):
    full_name: str | None = None
    phone: str | None = None
    ci: str | None = None
    birth_date: date | None = None
    email: str | None = None
    address: str | None = None
    notes: str | None = None
    total_amount: float | None = None


class RecordPaymentRequest(_CamelModel):
    amount: float
    paid_at: date | None = None
    notes: str | None = None


class UpdatePaymentRequest(_CamelModel):
    amount: float
    paid_at: date
    notes: str | None = None


class CreateDocumentRequest(_CamelModel):
    custom_name: str


class UpdateDocumentRequest(_CamelModel):
    notes: str | None = None


class OwnershipRequest(_CamelModel):
    owner_name: str
    start_year: Year | None = None
    end_year: Year | None = None
    is_current: bool = False
    notes: str | None = None

    def entry(self) -> OwnershipEntry:
        return OwnershipEntry(
            owner_name=self.owner_name,
            start_year=self.start_year,
            end_year=self.end_year,
            is_current=self.is_current,
            notes=self.notes,
        )


class ClientSummary(_CamelModel):
    id: str
    full_name: str
    phone: str | None = None


class ClientProfile(ClientSummary):
    ci: str | None = None
    birth_date: date | None = None
    email: str | None = None
    address: str | None = None
    notes: str | None = None
    total_amount: float | None = None
    created_at: str | None = None


class ClientListResponse(_CamelModel):
    items: list[ClientSummary]
    total: int
    page: int
    page_count: int


class ClientDetailResponse(_CamelModel):
    client: ClientProfile
    schema_outdated: bool = False
    missing_fields: list[str] = Field(default_factory=list)


class FileResponse(_CamelModel):
    id: str
    client_id: str
    client_document_id: str | None = None
    bucket: str
    path: str
    original_name: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    created_at: str | None = None


class SignedFileResponse(FileResponse):
    signed_url: str
    expires_in: int


class DocumentTypeResponse(_CamelModel):
    id: str
    name: str = ""
    code: str | None = None
    required: bool | None = None
    sort_order: int | None = None


class DocumentResponse(_CamelModel):
    id: str
    client_id: str
    document_type_id: str | None = None
    custom_name: str | None = None
    notes: str | None = None
    created_at: str | None = None
    document_type: DocumentTypeResponse | None = None
    display_name: str
    files: list[FileResponse] = Field(default_factory=list)


class PaymentResponse(_CamelModel):
    id: str
    client_id: str
    amount: float | None = None
    paid_at: date | None = None
    notes: str | None = None
    created_at: str | None = None


class OwnershipResponse(_CamelModel):
    id: str
    client_id: str
    owner_name: str | None = None
    start_year: int | None = None
    end_year: int | None = None
    is_current: bool | None = None
    notes: str | None = None
    created_at: str | None = None


# -- Dependencies -------------------------------------------------------------


def get_client_repository(backend: CallerScopedBackendDep) -> ClientRepository:
    return ClientRepository(backend)


ClientRepositoryDep = Annotated[ClientRepository, Depends(get_client_repository)]


# -- Endpoints ----------------------------------------------------------------


@router.get("")
async def list_clients(
    repository: ClientRepositoryDep,
    q: Annotated[str, Query(max_length=200)] = "",
    page: Annotated[int, Query(ge=1)] = 1,
) -> ClientListResponse:
    """Page of live clients ordered by name, optionally filtered by name or phone."""
    result = await repository.list_page(q, page)
    return ClientListResponse(
        items=[ClientSummary.model_validate(row) for row in result.items],
        total=result.total,
        page=result.page,
        page_count=result.page_count,
    )


@router.post("", status_code=201)
async def create_client(
    body: CreateClientRequest,
    repository: ClientRepositoryDep,
) -> ClientSummary:
    row = await repository.create(body.full_name, body.phone)
    return ClientSummary.model_validate(row)


@router.get("/{client_id}")
async def get_client(client_id: str, repository: ClientRepositoryDep) -> ClientDetailResponse:
    """Client profile; ``schemaOutdated`` flags a database missing the extended columns."""
    detail = await repository.get(client_id)
    return ClientDetailResponse(
        client=ClientProfile.model_validate(detail.row),
        schema_outdated=detail.schema_outdated,
        missing_fields=detail.missing_fields,
    )


@router.patch("/{client_id}")
async def update_client(
    client_id: str,
    body: UpdateClientRequest,
    repository: ClientRepositoryDep,
) -> ClientProfile:
    changes: dict[str, Any] = body.model_dump(exclude_unset=True, mode="json")
    row = await repository.update(client_id, changes)
    return ClientProfile.model_validate(row)


@router.get("/{client_id}/documents")
async def list_client_documents(
    client_id: str,
    backend: CallerScopedBackendDep,
) -> list[DocumentResponse]:
    """Live documents in display order, each with its live files."""
    documents = await DocumentRepository(backend).list_for_client(client_id)
    return [DocumentResponse.model_validate(doc) for doc in documents]


@router.get("/{client_id}/payments")
async def list_client_payments(
    client_id: str,
    backend: CallerScopedBackendDep,
) -> list[PaymentResponse]:
    rows = await PaymentRepository(backend).list_for_client(client_id)
    return [PaymentResponse.model_validate(row) for row in rows]


@router.post("/{client_id}/payments", status_code=201)
async def record_client_payment(
    client_id: str,
    body: RecordPaymentRequest,
    backend: CallerScopedBackendDep,
) -> PaymentResponse:
    """Record a payment; the amount must be greater than zero."""
    row = await PaymentRepository(backend).record(client_id, body.amount, body.paid_at, body.notes)
    return PaymentResponse.model_validate(row)


@router.get("/{client_id}/ownerships")
async def list_client_ownerships(
    client_id: str,
    backend: CallerScopedBackendDep,
) -> list[OwnershipResponse]:
    """Ownership history, current owner first."""
    rows = await OwnershipRepository(backend).list_for_client(client_id)
    return [OwnershipResponse.model_validate(row) for row in rows]


@router.post("/{client_id}/documents", status_code=201)
async def create_client_document(
    client_id: str,
    body: CreateDocumentRequest,
    backend: CallerScopedBackendDep,
) -> DocumentResponse:
    """Add an "Otros" document under the caller's alias."""
    document = await DocumentRepository(backend).create_custom(client_id, body.custom_name)
    return DocumentResponse.model_validate(document)


@router.patch("/{client_id}/documents/{document_id}")
async def update_client_document(
    client_id: str,
    document_id: str,
    body: UpdateDocumentRequest,
    backend: CallerScopedBackendDep,
) -> DocumentResponse:
    document = await DocumentRepository(backend).update_notes(client_id, document_id, body.notes)
    return DocumentResponse.model_validate(document)


@router.post("/{client_id}/documents/{document_id}/files", status_code=201)
async def upload_document_files(
    client_id: str,
    document_id: str,
    backend: CallerScopedBackendDep,
    files: Annotated[list[UploadFile], File()],
) -> list[FileResponse]:
    """Store one or more files under a document (multipart field ``files``)."""
    incoming = [
        IncomingFile(
            name=upload.filename or "file",
            content=await upload.read(),
            mime_type=upload.content_type,
        )
        for upload in files
    ]
    rows = await FileRepository(backend).upload(client_id, document_id, incoming)
    return [FileResponse.model_validate(row) for row in rows]


@router.get("/{client_id}/files/{file_id}")
async def view_client_file(
    client_id: str,
    file_id: str,
    backend: CallerScopedBackendDep,
) -> SignedFileResponse:
    """File metadata plus a short-lived signed URL to read its content."""
    signed = await FileRepository(backend).signed_view(client_id, file_id)
    return SignedFileResponse.model_validate(
        {**signed.row, "signed_url": signed.url, "expires_in": signed.expires_in}
    )


@router.put("/{client_id}/payments/{payment_id}")
async def update_client_payment(
    client_id: str,
    payment_id: str,
    body: UpdatePaymentRequest,
    backend: CallerScopedBackendDep,
) -> PaymentResponse:
    row = await PaymentRepository(backend).update(
        client_id, payment_id, body.amount, body.paid_at, body.notes
    )
    return PaymentResponse.model_validate(row)


@router.delete("/{client_id}/payments/{payment_id}", status_code=204)
async def delete_client_payment(
    client_id: str,
    payment_id: str,
    backend: CallerScopedBackendDep,
) -> None:
    await PaymentRepository(backend).soft_delete(client_id, payment_id)


@router.post("/{client_id}/ownerships", status_code=201)
async def create_client_ownership(
    client_id: str,
    body: OwnershipRequest,
    backend: CallerScopedBackendDep,
) -> OwnershipResponse:
    """Add an owner; marking it current clears the flag on the others."""
    row = await OwnershipRepository(backend).create(client_id, body.entry())
    return OwnershipResponse.model_validate(row)


@router.put("/{client_id}/ownerships/{ownership_id}")
async def update_client_ownership(
    client_id: str,
    ownership_id: str,
    body: OwnershipRequest,
    backend: CallerScopedBackendDep,
) -> OwnershipResponse:
    row = await OwnershipRepository(backend).update(client_id, ownership_id, body.entry())
    return OwnershipResponse.model_validate(row)


@router.delete("/{client_id}/ownerships/{ownership_id}", status_code=204)
async def delete_client_ownership(
    client_id: str,
    ownership_id: str,
    backend: CallerScopedBackendDep,
) -> None:
    await OwnershipRepository(backend).soft_delete(client_id, ownership_id)
