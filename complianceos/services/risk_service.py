"""
Risk Register Service.

Scoring on a 5×5 likelihood × impact matrix:
- inherent_score = likelihood * impact (1..25)
- level: ≥20 Very High, ≥15 High, ≥8 Medium, ≥4 Low, else Very Low
- each effective mitigate/avoid treatment is one mitigation step;
  residual = max(1, round(inherent * 0.7 ** steps))
- accept and transfer never reduce the score
"""

import re
import uuid
from datetime import date, timedelta
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.config import settings
from complianceos.db.models import ClientControl, RiskAssessment, RiskTreatment, Threat, Vulnerability
from complianceos.schemas.risk import AssessmentUpsert, DueItem, TreatmentCreate, TreatmentUpdate
from complianceos.services.exceptions import DomainError, NotFoundError
from complianceos.services.scoring import round_half_up

logger = structlog.get_logger(__name__)

MITIGATION_FACTOR = 0.7
REDUCING_TREATMENT_TYPES = frozenset({"mitigate", "avoid"})
DONE_TREATMENT_STATUSES = frozenset({"implemented", "completed"})
CLOSED_TREATMENT_STATUSES = frozenset({"implemented", "completed", "cancelled"})

RISK_LEVELS: tuple[tuple[int, str], ...] = (
    (20, "Very High"),
    (15, "High"),
    (8, "Medium"),
    (4, "Low"),
)

_LEVEL_PRIORITY = {
    "Very High": "critical",
    "High": "high",
    "Medium": "medium",
    "Low": "low",
    "Very Low": "low",
}


# ── Pure scoring ─────────────────────────────────────────────────────────


def risk_level(score: int) -> str:
    """Map a 1..25 score to its matrix level."""
    for threshold, label in RISK_LEVELS:
        if score >= threshold:
            return label
    return "Very Low"


def inherent_score(likelihood: int, impact: int) -> int:
    if not (1 <= likelihood <= 5 and 1 <= impact <= 5):
        raise DomainError("Likelihood and impact must be between 1 and 5")
    return likelihood * impact


def treatment_reduces_risk(treatment_type: str, status: str, control_effectiveness: Optional[str]) -> bool:
    """A treatment counts as a mitigation step once it is done or its control is effective."""
    if treatment_type not in REDUCING_TREATMENT_TYPES:
        return False
    return status in DONE_TREATMENT_STATUSES or control_effectiveness == "effective"


def residual_score(inherent: int, mitigation_steps: int) -> int:
    return max(1, round_half_up(inherent * MITIGATION_FACTOR ** mitigation_steps))


def level_priority(level: Optional[str]) -> str:
    return _LEVEL_PRIORITY.get(level or "", "medium")


# ── Human-readable sequence ids ──────────────────────────────────────────


async def next_sequence_id(
    db: AsyncSession,
    column,
    client_column,
    client_id: uuid.UUID,
    prefix: str,
    today: Optional[date] = None,
) -> str:
    """Next `{prefix}-{YYYY}-{NNN}` id for a client, sequenced per year."""
    year = (today or date.today()).year
    stem = f"{prefix}-{year}-"
    rows = await db.execute(
        select(column).where(client_column == client_id, column.like(f"{stem}%"))
    )
    pattern = re.compile(rf"^{re.escape(stem)}(\d+)$")
    highest = 0
    for value in rows.scalars().all():
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{stem}{highest + 1:03d}"


# ── Assessments ──────────────────────────────────────────────────────────


async def get_assessment(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> RiskAssessment:
    assessment = (
        await db.execute(
            select(RiskAssessment).where(
                RiskAssessment.id == assessment_id,
                RiskAssessment.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if assessment is None:
        raise NotFoundError("Risk assessment not found")
    return assessment


async def recalculate_residual(db: AsyncSession, assessment: RiskAssessment) -> RiskAssessment:
    """Recompute inherent and residual scores from the assessment and its treatments."""
    assessment.inherent_score = inherent_score(assessment.likelihood, assessment.impact)
    assessment.inherent_risk = risk_level(assessment.inherent_score)

    treatments = (
        await db.execute(
            select(RiskTreatment).where(RiskTreatment.risk_assessment_id == assessment.id)
        )
    ).scalars().all()
    steps = sum(
        1
        for t in treatments
        if treatment_reduces_risk(t.treatment_type, t.status, t.control_effectiveness)
    )
    assessment.residual_score = residual_score(assessment.inherent_score, steps)
    assessment.residual_risk = risk_level(assessment.residual_score)
    await db.flush()
    return assessment


async def upsert_assessment(
    db: AsyncSession,
    client_id: uuid.UUID,
    data: AssessmentUpsert,
    user_id: Optional[uuid.UUID] = None,
) -> RiskAssessment:
    """Update when `data.id` is given, otherwise create a draft assessment."""
    values = data.model_dump(exclude={"id"}, exclude_unset=True)
    for model, ref in ((Threat, data.threat_ref_id), (Vulnerability, data.vulnerability_ref_id)):
        if ref is None:
            continue
        found = await db.scalar(
            select(func.count()).select_from(model).where(model.id == ref, model.client_id == client_id)
        )
        if not found:
            raise DomainError(f"{model.__name__} does not belong to this client")

    if data.id is not None:
        assessment = await get_assessment(db, client_id, data.id)
        for key, value in values.items():
            setattr(assessment, key, value)
    else:
        score = inherent_score(data.likelihood, data.impact)
        assessment = RiskAssessment(
            client_id=client_id,
            assessment_id=await next_sequence_id(
                db, RiskAssessment.assessment_id, RiskAssessment.client_id, client_id, "RA"
            ),
            inherent_score=score,
            inherent_risk=risk_level(score),
            status="draft",
            created_by=user_id,
            **values,
        )
        db.add(assessment)
        await db.flush()
    return await recalculate_residual(db, assessment)


async def approve_assessment(
    db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID, today: Optional[date] = None
) -> RiskAssessment:
    assessment = await get_assessment(db, client_id, assessment_id)
    assessment.status = "approved"
    if assessment.next_review_date is None:
        assessment.next_review_date = (today or date.today()) + timedelta(
            days=settings.risk_review_interval_days
        )
    await db.flush()
    logger.info("risk_assessment_approved", assessment_id=str(assessment.id), client_id=str(client_id))
    return assessment


# ── Treatments ───────────────────────────────────────────────────────────


async def _check_client_control(db: AsyncSession, client_id: uuid.UUID, client_control_id: Optional[uuid.UUID]) -> None:
    if client_control_id is None:
        return
    found = await db.scalar(
        select(func.count()).select_from(ClientControl).where(
            ClientControl.id == client_control_id,
            ClientControl.client_id == client_id,
        )
    )
    if not found:
        raise DomainError("Linked control does not belong to this client")


async def add_treatment(
    db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID, data: TreatmentCreate
) -> RiskTreatment:
    assessment = await get_assessment(db, client_id, assessment_id)
    if data.treatment_type == "accept" and not (data.justification or "").strip():
        raise DomainError("Accepting a risk requires a justification")
    await _check_client_control(db, client_id, data.client_control_id)

    treatment = RiskTreatment(
        client_id=client_id,
        risk_assessment_id=assessment.id,
        **data.model_dump(),
    )
    db.add(treatment)
    await db.flush()
    await recalculate_residual(db, assessment)
    return treatment


async def update_treatment(
    db: AsyncSession, client_id: uuid.UUID, treatment_id: uuid.UUID, data: TreatmentUpdate
) -> RiskTreatment:
    treatment = (
        await db.execute(
            select(RiskTreatment).where(
                RiskTreatment.id == treatment_id,
                RiskTreatment.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if treatment is None:
        raise NotFoundError("Treatment not found")

    values = data.model_dump(exclude_unset=True)
    await _check_client_control(db, client_id, values.get("client_control_id"))
    for key, value in values.items():
        if value is not None:
            setattr(treatment, key, value)
    if treatment.treatment_type == "accept" and not (treatment.justification or "").strip():
        raise DomainError("Accepting a risk requires a justification")
    await db.flush()

    assessment = await get_assessment(db, client_id, treatment.risk_assessment_id)
    await recalculate_residual(db, assessment)
    return treatment


async def delete_treatment(db: AsyncSession, client_id: uuid.UUID, treatment_id: uuid.UUID) -> None:
    treatment = (
        await db.execute(
            select(RiskTreatment).where(
                RiskTreatment.id == treatment_id,
                RiskTreatment.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if treatment is None:
        raise NotFoundError("Treatment not found")
    assessment_id = treatment.risk_assessment_id
    await db.delete(treatment)
    await db.flush()
    await recalculate_residual(db, await get_assessment(db, client_id, assessment_id))


async def mark_controls_effective(db: AsyncSession, client_id: uuid.UUID, client_control_id: uuid.UUID) -> int:
    """Flag treatments linked to a control as effective and rescore their assessments."""
    treatments = (
        await db.execute(
            select(RiskTreatment).where(
                RiskTreatment.client_id == client_id,
                RiskTreatment.client_control_id == client_control_id,
            )
        )
    ).scalars().all()
    assessment_ids = set()
    for treatment in treatments:
        treatment.control_effectiveness = "effective"
        assessment_ids.add(treatment.risk_assessment_id)
    await db.flush()

    for assessment_id in assessment_ids:
        await recalculate_residual(db, await get_assessment(db, client_id, assessment_id))
    return len(assessment_ids)


async def delete_assessment(db: AsyncSession, client_id: uuid.UUID, assessment_id: uuid.UUID) -> None:
    assessment = await get_assessment(db, client_id, assessment_id)
    treatments = (
        await db.execute(select(RiskTreatment).where(RiskTreatment.risk_assessment_id == assessment.id))
    ).scalars().all()
    for treatment in treatments:
        await db.delete(treatment)
    await db.delete(assessment)
    await db.flush()


# ── Due dates ────────────────────────────────────────────────────────────


async def _due_candidates(
    db: AsyncSession, client_id: uuid.UUID
) -> list[tuple[str, uuid.UUID, str, date, str]]:
    """(type, id, title, due_date, priority) for approved reviews and open treatments."""
    out: list[tuple[str, uuid.UUID, str, date, str]] = []

    reviews = await db.execute(
        select(RiskAssessment).where(
            RiskAssessment.client_id == client_id,
            RiskAssessment.status == "approved",
            RiskAssessment.next_review_date.is_not(None),
        )
    )
    for a in reviews.scalars().all():
        out.append(("risk_review", a.id, f"{a.assessment_id}: {a.title}", a.next_review_date, level_priority(a.inherent_risk)))

    treatments = await db.execute(
        select(RiskTreatment, RiskAssessment.title, RiskAssessment.inherent_risk)
        .join(RiskAssessment, RiskAssessment.id == RiskTreatment.risk_assessment_id)
        .where(
            RiskTreatment.client_id == client_id,
            RiskTreatment.due_date.is_not(None),
            RiskTreatment.status.not_in(CLOSED_TREATMENT_STATUSES),
        )
    )
    for t, title, level in treatments.all():
        out.append(("risk_treatment", t.id, f"Treatment: {title}", t.due_date, level_priority(level)))

    return out


def _overdue(candidates: Iterable[tuple], today: date) -> list[DueItem]:
    items = [
        DueItem(type=kind, id=id_, title=title, due_date=due, days_overdue=(today - due).days, priority=priority)
        for kind, id_, title, due, priority in candidates
        if due < today
    ]
    items.sort(key=lambda i: i.days_overdue, reverse=True)
    return items


def _upcoming(candidates: Iterable[tuple], today: date, days: int) -> list[DueItem]:
    horizon = today + timedelta(days=days)
    items = [
        DueItem(type=kind, id=id_, title=title, due_date=due, days_until=(due - today).days, priority=priority)
        for kind, id_, title, due, priority in candidates
        if today <= due <= horizon
    ]
    items.sort(key=lambda i: i.due_date)
    return items


async def overdue_items(
    db: AsyncSession, client_id: uuid.UUID, limit: int = 10, today: Optional[date] = None
) -> list[DueItem]:
    """Overdue reviews and treatments, most overdue first."""
    today = today or date.today()
    return _overdue(await _due_candidates(db, client_id), today)[:limit]


async def upcoming_items(
    db: AsyncSession, client_id: uuid.UUID, days: int = 7, today: Optional[date] = None
) -> list[DueItem]:
    """Reviews and treatments due within `days`, soonest first."""
    today = today or date.today()
    return _upcoming(await _due_candidates(db, client_id), today, days)


async def risk_matrix(db: AsyncSession, client_id: uuid.UUID) -> dict:
    """5×5 count grid: matrix[likelihood - 1][impact - 1]."""
    grid = [[0] * 5 for _ in range(5)]
    rows = await db.execute(
        select(RiskAssessment.likelihood, RiskAssessment.impact, func.count())
        .where(RiskAssessment.client_id == client_id)
        .group_by(RiskAssessment.likelihood, RiskAssessment.impact)
    )
    total = 0
    for likelihood, impact, count in rows.all():
        if 1 <= likelihood <= 5 and 1 <= impact <= 5:
            grid[likelihood - 1][impact - 1] = count
            total += count
    return {"matrix": grid, "total": total}


async def level_distribution(db: AsyncSession, client_id: uuid.UUID) -> dict[str, int]:
    """Count of assessments per inherent level (every level present, zero-filled)."""
    counts = {label: 0 for _, label in RISK_LEVELS}
    counts["Very Low"] = 0
    rows = await db.execute(
        select(RiskAssessment.inherent_risk, func.count())
        .where(RiskAssessment.client_id == client_id)
        .group_by(RiskAssessment.inherent_risk)
    )
    for level, count in rows.all():
        counts[level] = count
    return counts


async def open_treatment_count(db: AsyncSession, client_id: uuid.UUID) -> int:
    return await db.scalar(
        select(func.count()).select_from(RiskTreatment).where(
            RiskTreatment.client_id == client_id,
            RiskTreatment.status.not_in(CLOSED_TREATMENT_STATUSES),
        )
    ) or 0
