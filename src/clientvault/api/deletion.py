"""Deletion endpoints for files, custom documents and whole clients.

All three run with the privileged backend (service role when configured,
the caller's token otherwise) and answer ``{"ok": true, ...}`` on success.
Errors are rendered by the problem-details handlers.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from clientvault.deletion import CascadeDeletionService
from clientvault.domain.exceptions import BadRequestError
from clientvault.infra.auth.dependencies import PrivilegedBackendDep
from clientvault.infra.backend.settings import BackendSettings, get_backend_settings

router = APIRouter(tags=["deletion"])


# -- Response models ----------------------------------------------------------


class DeletionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True


class CascadeDeletionResponse(DeletionResponse):
    removed_files: int


# -- Dependencies -------------------------------------------------------------


def get_deletion_service(
    backend: PrivilegedBackendDep,
    settings: Annotated[BackendSettings, Depends(get_backend_settings)],
) -> CascadeDeletionService:
    return CascadeDeletionService(
        backend,
        storage_batch_size=settings.storage_remove_batch_size,
    )


DeletionServiceDep = Annotated[CascadeDeletionService, Depends(get_deletion_service)]


async def read_body_client_id(request: Request) -> str | None:
    """``clientId`` from the JSON body; a missing or unreadable body counts as empty."""
    try:
        body: Any = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        return None
    value = body.get("clientId")
    return str(value) if value else None


async def _require_client_id(request: Request) -> str:
    client_id = await read_body_client_id(request)
    if not client_id:
        raise BadRequestError("Missing clientId")
    return client_id


# -- Endpoints ----------------------------------------------------------------


@router.post("/files/{file_id}/delete")
async def delete_file(
    file_id: str,
    request: Request,
    service: DeletionServiceDep,
) -> DeletionResponse:
    """Remove a file's stored object and mark its row deleted."""
    client_id = await _require_client_id(request)
    await service.delete_file(file_id, client_id)
    return DeletionResponse()


@router.post("/client-documents/{doc_id}/delete")
async def delete_client_document(
    doc_id: str,
    request: Request,
    service: DeletionServiceDep,
) -> CascadeDeletionResponse:
    """Delete a custom document with all of its files."""
    client_id = await _require_client_id(request)
    result = await service.delete_document(doc_id, client_id)
    return CascadeDeletionResponse(removed_files=result.removed_files)


@router.post("/clients/{client_id}/delete")
async def delete_client(
    client_id: str,
    request: Request,
    service: DeletionServiceDep,
) -> CascadeDeletionResponse:
    """Delete a client with every dependent row and stored object.

    A ``clientId`` in the body is optional but must match the path.
    """
    body_client_id = await read_body_client_id(request)
    if body_client_id and body_client_id != client_id:
        raise BadRequestError("clientId mismatch")
    result = await service.delete_client(client_id)
    return CascadeDeletionResponse(removed_files=result.removed_files)
