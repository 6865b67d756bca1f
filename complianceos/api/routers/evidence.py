"""Evidence endpoints: requests, status workflow, integrations and files."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.models import Evidence, EvidenceFile
from complianceos.db.repositories.evidence import evidence_file_repo, evidence_repo
from complianceos.schemas.evidence import (
    EvidenceCreate,
    EvidenceFileResponse,
    EvidenceResponse,
    EvidenceStatusUpdate,
    FileLink,
    IntegrationLink,
)
from complianceos.services import evidence_service, storage
from complianceos.services.exceptions import NotFoundError
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients/{client_id}/evidence", tags=["evidence"])


@router.get("", response_model=list[EvidenceResponse])
async def list_evidence(
    status: Optional[str] = Query(default=None),
    client_control_id: Optional[uuid.UUID] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List evidence (paginated)."""
    return await evidence_repo.list(
        db, access.client_id, offset=offset, limit=limit,
        status=status, client_control_id=client_control_id,
    )


@router.get("/requests", response_model=list[EvidenceResponse])
async def list_requests(
    framework: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Open evidence requests (status pending), oldest due first."""
    stmt = select(Evidence).where(Evidence.client_id == access.client_id, Evidence.status == "pending")
    if framework:
        stmt = stmt.where(Evidence.framework == framework)
    rows = await db.execute(stmt.order_by(Evidence.due_date.asc().nulls_last(), Evidence.created_at))
    return rows.scalars().all()


@router.get("/by-control/{client_control_id}", response_model=list[EvidenceResponse])
async def list_by_control(
    client_control_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Evidence linked to one client control."""
    return await evidence_repo.list(db, access.client_id, limit=200, client_control_id=client_control_id)


@router.get("/files", response_model=list[EvidenceFileResponse])
async def list_client_files(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Every file of the client, newest first."""
    rows = await db.execute(
        select(EvidenceFile)
        .where(EvidenceFile.client_id == access.client_id)
        .order_by(EvidenceFile.created_at.desc())
    )
    return rows.scalars().all()


@router.get("/files/{file_id}/download")
async def download_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Stream a stored file."""
    record = await evidence_service.get_file(db, access.client_id, file_id)
    path = storage.object_path(record.file_key)
    if not path.exists():
        raise NotFoundError("File content not found")
    return FileResponse(path, media_type=record.content_type, filename=record.filename)


@router.delete("/files/{file_id}", status_code=204)
async def delete_file(
    file_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Delete a file record and its stored object."""
    await evidence_service.delete_file(db, access.client_id, file_id)
    await get_audit_service().log_request_event(
        db, request,
        action="evidence_file_deleted",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="evidence_file",
        resource_id=str(file_id),
    )


@router.post("", response_model=EvidenceResponse, status_code=201)
async def create_evidence(
    body: EvidenceCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create an evidence item (status pending)."""
    return await evidence_service.create_evidence(db, access.client_id, body)


@router.get("/{evidence_id}", response_model=EvidenceResponse)
async def get_evidence(
    evidence_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Get a single evidence item."""
    return await evidence_service.get_evidence(db, access.client_id, evidence_id)


@router.delete("/{evidence_id}", status_code=204)
async def delete_evidence(
    evidence_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Delete an evidence item and its files."""
    await evidence_service.delete_evidence(db, access.client_id, evidence_id)


@router.patch("/{evidence_id}/status", response_model=EvidenceResponse)
async def update_status(
    evidence_id: uuid.UUID,
    body: EvidenceStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Change evidence status; verification implements the linked control."""
    evidence, previous = await evidence_service.set_status(db, access.client_id, evidence_id, body.status)
    await get_audit_service().log_request_event(
        db, request,
        action="evidence_status_changed",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="evidence",
        resource_id=str(evidence.id),
        details={"from": previous, "to": evidence.status},
    )
    return evidence


@router.post("/{evidence_id}/integration", response_model=EvidenceResponse)
async def link_integration(
    evidence_id: uuid.UUID,
    body: IntegrationLink,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Collect evidence from an integration."""
    return await evidence_service.link_integration(db, access.client_id, evidence_id, body)


@router.get("/{evidence_id}/files", response_model=list[EvidenceFileResponse])
async def list_files(
    evidence_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Files attached to an evidence item."""
    await evidence_service.get_evidence(db, access.client_id, evidence_id)
    return await evidence_file_repo.list(db, access.client_id, limit=200, evidence_id=evidence_id)


@router.post("/{evidence_id}/files", response_model=EvidenceFileResponse, status_code=201)
async def upload_file(
    evidence_id: uuid.UUID,
    request: Request,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Upload a file (multipart) to an evidence item."""
    record = await evidence_service.upload_file(db, access.client_id, evidence_id, file, access.user_id)
    await get_audit_service().log_request_event(
        db, request,
        action="evidence_file_uploaded",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="evidence_file",
        resource_id=str(record.id),
        details={"evidence_id": str(evidence_id), "filename": record.filename, "size": record.file_size},
    )
    return record


@router.post("/{evidence_id}/files/link", response_model=EvidenceFileResponse, status_code=201)
async def link_file(
    evidence_id: uuid.UUID,
    body: FileLink,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Attach a file already uploaded to another evidence item."""
    return await evidence_service.link_existing_file(db, access.client_id, evidence_id, body.file_id)
