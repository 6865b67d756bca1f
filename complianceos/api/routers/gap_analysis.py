"""Gap assessment endpoints: responses, prioritisation, report and tasks."""

import uuid

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.repositories.gap import gap_assessment_repo
from complianceos.schemas.gap import (
    GapAssessmentCreate,
    GapAssessmentDetail,
    GapAssessmentResponse,
    GapResponseOut,
    GapResponseUpsert,
    GapSummary,
    ReportUpdate,
    TaskResponse,
)
from complianceos.services import gap_analysis
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients/{client_id}/gap-assessments", tags=["gap-analysis"])


@router.get("", response_model=list[GapAssessmentResponse])
async def list_assessments(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Gap assessments, newest first."""
    return await gap_assessment_repo.list(db, access.client_id, limit=200)


@router.post("", response_model=GapAssessmentResponse, status_code=201)
async def create_assessment(
    body: GapAssessmentCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Start a gap assessment (status draft)."""
    return await gap_assessment_repo.create(db, body, access.client_id, status="draft", report_details={})


@router.get("/{assessment_id}", response_model=GapAssessmentDetail)
async def get_assessment(
    assessment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """An assessment with all of its responses."""
    assessment = await gap_analysis.get_assessment(db, access.client_id, assessment_id)
    responses = await gap_analysis.list_responses(db, assessment.id)
    return GapAssessmentDetail(
        **GapAssessmentResponse.model_validate(assessment).model_dump(),
        responses=[GapResponseOut.model_validate(r) for r in responses],
    )


@router.put("/{assessment_id}/responses/{control_code}", response_model=GapResponseOut)
async def upsert_response(
    assessment_id: uuid.UUID,
    body: GapResponseUpsert,
    control_code: str = Path(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Record the current and target status of one control."""
    return await gap_analysis.upsert_response(db, access.client_id, assessment_id, control_code, body)


@router.post("/{assessment_id}/complete", response_model=GapAssessmentResponse)
async def complete_assessment(
    assessment_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Complete the assessment; it becomes read-only."""
    assessment = await gap_analysis.complete_assessment(db, access.client_id, assessment_id)
    await get_audit_service().log_request_event(
        db, request,
        action="gap_assessment_completed",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="gap_assessment",
        resource_id=str(assessment.id),
    )
    return assessment


@router.post("/{assessment_id}/priorities", response_model=list[GapResponseOut])
async def run_priorities(
    assessment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Score every response and return them highest priority first."""
    return await gap_analysis.run_priorities(db, access.client_id, assessment_id)


@router.patch("/{assessment_id}/report", response_model=GapAssessmentResponse)
async def update_report(
    assessment_id: uuid.UUID,
    body: ReportUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update the executive summary, scope and report details."""
    return await gap_analysis.update_report(db, access.client_id, assessment_id, body)


@router.post(
    "/{assessment_id}/responses/{response_id}/convert-to-task",
    response_model=TaskResponse,
    status_code=201,
)
async def convert_to_task(
    assessment_id: uuid.UUID,
    response_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Turn a gap into a remediation task."""
    return await gap_analysis.convert_to_task(db, access.client_id, assessment_id, response_id)


@router.get("/{assessment_id}/summary", response_model=GapSummary)
async def get_summary(
    assessment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Counts per status and severity, plus readiness."""
    return await gap_analysis.summary(db, access.client_id, assessment_id)
