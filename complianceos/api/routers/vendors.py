"""Vendor endpoints: CRUD, onboarding wizard and vendor DPAs."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.models import Vendor, VendorDpa
from complianceos.db.repositories.vendor import vendor_repo
from complianceos.schemas.vendor import (
    DataMapping,
    DpaStatusUpdate,
    OnboardingDecision,
    OnboardingStart,
    OnboardingSubmit,
    VendorCreate,
    VendorDpaCreate,
    VendorDpaResponse,
    VendorResponse,
    VendorStats,
    VendorUpdate,
)
from complianceos.services import vendor_service
from complianceos.services.input_sanitizer import sanitize_like_input
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients/{client_id}", tags=["vendors"])


@router.get("/vendors", response_model=list[VendorResponse])
async def list_vendors(
    status: Optional[str] = Query(default=None),
    criticality: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=100),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List vendors, optionally filtered and searched by name."""
    stmt = select(Vendor).where(Vendor.client_id == access.client_id)
    if status:
        stmt = stmt.where(Vendor.status == status)
    if criticality:
        stmt = stmt.where(Vendor.criticality == criticality)
    if q:
        stmt = stmt.where(Vendor.name.ilike(f"%{sanitize_like_input(q)}%", escape="\\"))
    return (await db.execute(stmt.order_by(Vendor.name))).scalars().all()


@router.get("/vendors/stats", response_model=VendorStats)
async def get_vendor_stats(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Vendor counts by criticality and review state."""
    return await vendor_service.vendor_stats(db, access.client_id)


@router.post("/vendors", response_model=VendorResponse, status_code=201)
async def create_vendor(
    body: VendorCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a vendor."""
    return await vendor_repo.create(db, body, access.client_id)


@router.post("/vendors/onboarding", response_model=VendorResponse, status_code=201)
async def start_onboarding(
    body: OnboardingStart,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Step 1: create the vendor in Onboarding."""
    return await vendor_service.start_onboarding(db, access.client_id, body)


@router.get("/vendors/{vendor_id}", response_model=VendorResponse)
async def get_vendor(
    vendor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Get a single vendor."""
    return await vendor_service.get_vendor(db, access.client_id, vendor_id)


@router.patch("/vendors/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    vendor_id: uuid.UUID,
    body: VendorUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a vendor."""
    vendor = await vendor_repo.update(db, vendor_id, access.client_id, body)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return vendor


@router.delete("/vendors/{vendor_id}", status_code=204)
async def delete_vendor(
    vendor_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a vendor and its DPAs."""
    await vendor_service.delete_vendor(db, access.client_id, vendor_id)
    await get_audit_service().log_request_event(
        db, request,
        action="vendor_deleted",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="vendor",
        resource_id=str(vendor_id),
    )


# ── Onboarding wizard ────────────────────────────────────────────────────


@router.put("/vendors/{vendor_id}/data-mapping", response_model=VendorResponse)
async def save_data_mapping(
    vendor_id: uuid.UUID,
    body: DataMapping,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Step 2: record the data the vendor processes."""
    return await vendor_service.save_data_mapping(db, access.client_id, vendor_id, body)


@router.post("/vendors/{vendor_id}/onboarding/submit", response_model=VendorDpaResponse)
async def submit_onboarding(
    vendor_id: uuid.UUID,
    body: OnboardingSubmit,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Step 3: draft the DPA and request approval."""
    _, dpa = await vendor_service.submit_onboarding(db, access.client, vendor_id, body.template_id)
    return dpa


@router.post("/vendors/{vendor_id}/onboarding/decision", response_model=VendorResponse)
async def decide_onboarding(
    vendor_id: uuid.UUID,
    body: OnboardingDecision,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Step 4: approve or reject the vendor."""
    vendor = await vendor_service.decide_onboarding(db, access.client_id, vendor_id, body.decision)
    await get_audit_service().log_request_event(
        db, request,
        action="vendor_onboarding_decided",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="vendor",
        resource_id=str(vendor.id),
        details={"decision": body.decision},
    )
    return vendor


# ── Vendor DPAs ──────────────────────────────────────────────────────────


@router.get("/vendors/{vendor_id}/dpas", response_model=list[VendorDpaResponse])
async def list_vendor_dpas(
    vendor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """DPAs of a vendor, newest first."""
    await vendor_service.get_vendor(db, access.client_id, vendor_id)
    rows = await db.execute(
        select(VendorDpa)
        .where(VendorDpa.client_id == access.client_id, VendorDpa.vendor_id == vendor_id)
        .order_by(VendorDpa.created_at.desc())
    )
    return rows.scalars().all()


@router.post("/vendors/{vendor_id}/dpas", response_model=VendorDpaResponse, status_code=201)
async def create_vendor_dpa(
    vendor_id: uuid.UUID,
    body: VendorDpaCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Generate a DPA from a template, or store custom content."""
    return await vendor_service.create_vendor_dpa(db, access.client, vendor_id, body)


@router.patch("/dpas/{dpa_id}/status", response_model=VendorDpaResponse)
async def set_dpa_status(
    dpa_id: uuid.UUID,
    body: DpaStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Move a DPA through Draft, Review, Signed and Archived."""
    dpa = await vendor_service.set_dpa_status(db, access.client_id, dpa_id, body.status)
    if body.status == "Signed":
        await get_audit_service().log_request_event(
            db, request,
            action="dpa_signed",
            organization_id=access.organization_id,
            client_id=access.client_id,
            user_id=access.user_id,
            resource_type="vendor_dpa",
            resource_id=str(dpa.id),
        )
    return dpa


@router.delete("/dpas/{dpa_id}", status_code=204)
async def delete_vendor_dpa(
    dpa_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a DPA."""
    dpa = await vendor_service.get_vendor_dpa(db, access.client_id, dpa_id)
    await db.delete(dpa)
    await db.flush()
