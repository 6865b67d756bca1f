"""Risk register endpoints: threats, vulnerabilities, assessments and treatments."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.models import RiskTreatment, Threat, Vulnerability
from complianceos.db.repositories.risk import assessment_repo, threat_repo, vulnerability_repo
from complianceos.schemas.risk import (
    AssessmentResponse,
    AssessmentUpsert,
    DueItem,
    ThreatCreate,
    ThreatResponse,
    ThreatUpdate,
    TreatmentCreate,
    TreatmentResponse,
    TreatmentUpdate,
    VulnerabilityCreate,
    VulnerabilityResponse,
    VulnerabilityUpdate,
)
from complianceos.services import risk_service
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients/{client_id}/risks", tags=["risks"])


# ── Threats ──────────────────────────────────────────────────────────────


@router.get("/threats", response_model=list[ThreatResponse])
async def list_threats(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List threats (paginated)."""
    return await threat_repo.list(db, access.client_id, offset=offset, limit=limit, order_by="threat_id", descending=False)


@router.post("/threats", response_model=ThreatResponse, status_code=201)
async def create_threat(
    body: ThreatCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a threat with the next T-YYYY-NNN id."""
    threat_id = await risk_service.next_sequence_id(db, Threat.threat_id, Threat.client_id, access.client_id, "T")
    return await threat_repo.create(db, body, access.client_id, threat_id=threat_id)


@router.patch("/threats/{threat_id}", response_model=ThreatResponse)
async def update_threat(
    threat_id: uuid.UUID,
    body: ThreatUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a threat."""
    threat = await threat_repo.update(db, threat_id, access.client_id, body)
    if not threat:
        raise HTTPException(status_code=404, detail="Threat not found")
    return threat


@router.delete("/threats/{threat_id}", status_code=204)
async def delete_threat(
    threat_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a threat."""
    deleted = await threat_repo.delete(db, threat_id, access.client_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Threat not found")


# ── Vulnerabilities ──────────────────────────────────────────────────────


@router.get("/vulnerabilities", response_model=list[VulnerabilityResponse])
async def list_vulnerabilities(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List vulnerabilities (paginated)."""
    return await vulnerability_repo.list(
        db, access.client_id, offset=offset, limit=limit, order_by="vulnerability_id", descending=False
    )


@router.post("/vulnerabilities", response_model=VulnerabilityResponse, status_code=201)
async def create_vulnerability(
    body: VulnerabilityCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a vulnerability with the next V-YYYY-NNN id."""
    vulnerability_id = await risk_service.next_sequence_id(
        db, Vulnerability.vulnerability_id, Vulnerability.client_id, access.client_id, "V"
    )
    return await vulnerability_repo.create(db, body, access.client_id, vulnerability_id=vulnerability_id)


@router.patch("/vulnerabilities/{vulnerability_id}", response_model=VulnerabilityResponse)
async def update_vulnerability(
    vulnerability_id: uuid.UUID,
    body: VulnerabilityUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a vulnerability."""
    vulnerability = await vulnerability_repo.update(db, vulnerability_id, access.client_id, body)
    if not vulnerability:
        raise HTTPException(status_code=404, detail="Vulnerability not found")
    return vulnerability


@router.delete("/vulnerabilities/{vulnerability_id}", status_code=204)
async def delete_vulnerability(
    vulnerability_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a vulnerability."""
    deleted = await vulnerability_repo.delete(db, vulnerability_id, access.client_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Vulnerability not found")


# ── Assessments ──────────────────────────────────────────────────────────


@router.get("/assessments", response_model=list[AssessmentResponse])
async def list_assessments(
    status: Optional[str] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List risk assessments, highest inherent score first."""
    return await assessment_repo.list(
        db, access.client_id, offset=offset, limit=limit, order_by="inherent_score", status=status
    )


@router.put("/assessments", response_model=AssessmentResponse)
async def upsert_assessment(
    body: AssessmentUpsert,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create (no id) or update (with id) an assessment; scores are recomputed."""
    return await risk_service.upsert_assessment(db, access.client_id, body, access.user_id)


@router.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(
    assessment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Get a single assessment."""
    return await risk_service.get_assessment(db, access.client_id, assessment_id)


@router.post("/assessments/{assessment_id}/approve", response_model=AssessmentResponse)
async def approve_assessment(
    assessment_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Approve an assessment and schedule its next review."""
    assessment = await risk_service.approve_assessment(db, access.client_id, assessment_id)
    await get_audit_service().log_request_event(
        db, request,
        action="risk_assessment_approved",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="risk_assessment",
        resource_id=str(assessment.id),
        details={"assessment_id": assessment.assessment_id, "inherent_risk": assessment.inherent_risk},
    )
    return assessment


@router.delete("/assessments/{assessment_id}", status_code=204)
async def delete_assessment(
    assessment_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.OWNER)),
):
    """Delete an assessment and its treatments."""
    await risk_service.delete_assessment(db, access.client_id, assessment_id)
    await get_audit_service().log_request_event(
        db, request,
        action="risk_assessment_deleted",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="risk_assessment",
        resource_id=str(assessment_id),
    )


# ── Treatments ───────────────────────────────────────────────────────────


@router.get("/assessments/{assessment_id}/treatments", response_model=list[TreatmentResponse])
async def list_treatments(
    assessment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Treatments of an assessment."""
    await risk_service.get_assessment(db, access.client_id, assessment_id)
    rows = await db.execute(
        select(RiskTreatment)
        .where(RiskTreatment.client_id == access.client_id, RiskTreatment.risk_assessment_id == assessment_id)
        .order_by(RiskTreatment.created_at)
    )
    return rows.scalars().all()


@router.post("/assessments/{assessment_id}/treatments", response_model=TreatmentResponse, status_code=201)
async def add_treatment(
    assessment_id: uuid.UUID,
    body: TreatmentCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Add a treatment; the residual score is recomputed."""
    return await risk_service.add_treatment(db, access.client_id, assessment_id, body)


@router.patch("/treatments/{treatment_id}", response_model=TreatmentResponse)
async def update_treatment(
    treatment_id: uuid.UUID,
    body: TreatmentUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a treatment; the residual score is recomputed."""
    return await risk_service.update_treatment(db, access.client_id, treatment_id, body)


@router.delete("/treatments/{treatment_id}", status_code=204)
async def delete_treatment(
    treatment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a treatment."""
    await risk_service.delete_treatment(db, access.client_id, treatment_id)


# ── Due dates & matrix ───────────────────────────────────────────────────


@router.get("/overdue", response_model=list[DueItem])
async def list_overdue(
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Overdue reviews and treatments, most overdue first."""
    return await risk_service.overdue_items(db, access.client_id, limit=limit)


@router.get("/upcoming", response_model=list[DueItem])
async def list_upcoming(
    days: int = Query(default=7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Reviews and treatments due within `days`."""
    return await risk_service.upcoming_items(db, access.client_id, days=days)


@router.get("/matrix")
async def get_matrix(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """5x5 likelihood by impact count grid."""
    return await risk_service.risk_matrix(db, access.client_id)
