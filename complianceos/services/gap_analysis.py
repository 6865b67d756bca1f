"""
Gap Analysis Service.

Deterministic priority scoring for gap responses:
    base    not_implemented 70, partial 40, implemented 0, not_applicable 0
    target  +20 required, -30 not_required
    +10     no evidence links and not implemented
    clamp   0..100
Severity: >80 critical, >50 high, >0 medium, else none.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import GapAssessment, GapResponse, ProjectTask
from complianceos.schemas.gap import GapResponseUpsert, GapSummary, ReportUpdate, TaskUpdate
from complianceos.services.exceptions import ConflictError, NotFoundError, TransitionError
from complianceos.services.scoring import percentage

logger = structlog.get_logger(__name__)

STATUS_BASE = {
    "not_implemented": 70,
    "partial": 40,
    "implemented": 0,
    "not_applicable": 0,
}
TARGET_ADJUSTMENT = {"required": 20, "not_required": -30}
MISSING_EVIDENCE_PENALTY = 10
SEVERITIES = ("critical", "high", "medium", "none")


def priority_score(
    current_status: Optional[str],
    target_status: Optional[str],
    evidence_links: Optional[list] = None,
) -> int:
    score = STATUS_BASE.get(current_status or "not_implemented", 70)
    score += TARGET_ADJUSTMENT.get(target_status or "", 0)
    if not evidence_links and current_status != "implemented":
        score += MISSING_EVIDENCE_PENALTY
    return max(0, min(100, score))


def gap_severity(score: int) -> str:
    if score > 80:
        return "critical"
    if score > 50:
        return "high"
    if score > 0:
        return "medium"
    return "none"


# ── Assessments ──────────────────────────────────────────────────────────


async def get_assessment(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> GapAssessment:
    assessment = (
        await db.execute(
            select(GapAssessment).where(
                GapAssessment.id == assessment_id,
                GapAssessment.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if assessment is None:
        raise NotFoundError("Gap assessment not found")
    return assessment


async def list_responses(db: AsyncSession, assessment_id: uuid.UUID) -> list[GapResponse]:
    return list(
        (
            await db.execute(
                select(GapResponse)
                .where(GapResponse.assessment_id == assessment_id)
                .order_by(GapResponse.control_code)
            )
        ).scalars().all()
    )


def _ensure_editable(assessment: GapAssessment) -> None:
    if assessment.status == "completed":
        raise TransitionError("Completed assessments are read-only")


async def upsert_response(
    db: AsyncSession,
    client_id: uuid.UUID,
    assessment_id: uuid.UUID,
    control_code: str,
    data: GapResponseUpsert,
) -> GapResponse:
    assessment = await get_assessment(db, client_id, assessment_id)
    _ensure_editable(assessment)

    response = (
        await db.execute(
            select(GapResponse).where(
                GapResponse.assessment_id == assessment.id,
                GapResponse.control_code == control_code,
            )
        )
    ).scalar_one_or_none()
    if response is None:
        response = GapResponse(assessment_id=assessment.id, control_code=control_code, evidence_links=[])
        db.add(response)

    for key, value in data.model_dump(exclude_unset=True).items():
        if key == "evidence_links":
            value = list(value or [])
        setattr(response, key, value)

    if assessment.status == "draft":
        assessment.status = "in_progress"
    assessment.updated_at = datetime.utcnow()
    await db.flush()
    return response


async def complete_assessment(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> GapAssessment:
    assessment = await get_assessment(db, client_id, assessment_id)
    _ensure_editable(assessment)
    assessment.status = "completed"
    assessment.completed_at = datetime.utcnow()
    await db.flush()
    logger.info("gap_assessment_completed", assessment_id=str(assessment.id), client_id=str(client_id))
    return assessment


async def run_priorities(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> list[GapResponse]:
    """Score every response, persist score and severity, return them highest first."""
    assessment = await get_assessment(db, client_id, assessment_id)
    responses = await list_responses(db, assessment.id)
    for response in responses:
        score = priority_score(response.current_status, response.target_status, response.evidence_links)
        response.priority_score = score
        response.gap_severity = gap_severity(score)
    await db.flush()
    responses.sort(key=lambda r: (-(r.priority_score or 0), r.control_code))
    return responses


async def update_report(
    db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID, data: ReportUpdate
) -> GapAssessment:
    assessment = await get_assessment(db, client_id, assessment_id)
    if data.executive_summary is not None:
        assessment.executive_summary = data.executive_summary
    if data.scope is not None:
        assessment.scope = data.scope
    if data.report_details:
        assessment.report_details = {**(assessment.report_details or {}), **data.report_details}
    await db.flush()
    return assessment


async def convert_to_task(
    db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID, response_id: uuid.UUID
) -> ProjectTask:
    assessment = await get_assessment(db, client_id, assessment_id)
    response = (
        await db.execute(
            select(GapResponse).where(
                GapResponse.id == response_id,
                GapResponse.assessment_id == assessment.id,
            )
        )
    ).scalar_one_or_none()
    if response is None:
        raise NotFoundError("Gap response not found")
    if response.remediation_plan and response.remediation_plan.startswith("Assigned as task"):
        raise ConflictError("This gap has already been converted to a task")

    title = f"REMEDIATION: {response.control_code}"
    task = ProjectTask(
        client_id=client_id,
        title=title,
        description=response.notes,
        status="todo",
        priority="high",
        source_type="gap_analysis",
        source_id=str(response.id),
    )
    db.add(task)
    await db.flush()

    response.remediation_plan = f"Assigned as task #{task.id}: {title}"
    await db.flush()
    logger.info("gap_converted_to_task", response_id=str(response.id), task_id=str(task.id))
    return task


async def summary(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> GapSummary:
    assessment = await get_assessment(db, client_id, assessment_id)
    responses = await list_responses(db, assessment.id)

    by_status = {status: 0 for status in STATUS_BASE}
    by_severity = {severity: 0 for severity in SEVERITIES}
    for response in responses:
        status = response.current_status or "not_implemented"
        by_status[status] = by_status.get(status, 0) + 1
        if response.gap_severity:
            by_severity[response.gap_severity] = by_severity.get(response.gap_severity, 0) + 1

    applicable = len(responses) - by_status["not_applicable"]
    return GapSummary(
        total=len(responses),
        by_status=by_status,
        by_severity=by_severity,
        readiness_pct=percentage(by_status["implemented"], applicable),
    )


# ── Tasks ────────────────────────────────────────────────────────────────


async def update_task(db: AsyncSession, client_id: uuid.UUID, task_id: uuid.UUID, data: TaskUpdate) -> ProjectTask:
    task = (
        await db.execute(select(ProjectTask).where(ProjectTask.id == task_id, ProjectTask.client_id == client_id))
    ).scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found")
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(task, key, value)
    await db.flush()
    return task
