"""
Client compliance aggregates.

- Compliance score over applicable client controls (cached in Redis)
- Policy coverage: controls backed by at least one mapped policy
- Onboarding checklist and workspace dashboard
- Framework adoption, client control updates and client deletion
"""

import uuid
from datetime import date
from typing import Optional

import structlog
from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import (
    BcPlan,
    BcProgram,
    BusinessImpactAnalysis,
    BusinessProcess,
    Client,
    ClientControl,
    ClientMembership,
    ClientPolicy,
    Control,
    ControlPolicyMapping,
    Employee,
    Evidence,
    EvidenceFile,
    Framework,
    GapAssessment,
    GapResponse,
    Invitation,
    NotificationLog,
    NotificationSettings,
    PolicyAssignment,
    PolicyException,
    PolicyVersion,
    ProjectTask,
    RecoveryObjective,
    RiskAssessment,
    RiskTreatment,
    Threat,
    Vendor,
    VendorDpa,
    Vulnerability,
)
from complianceos.schemas.framework import ClientControlUpdate
from complianceos.services import risk_service
from complianceos.services.cache import cache_get, cache_set, dashboard_key, invalidate_client_scores, score_key
from complianceos.services.exceptions import ConflictError, DomainError, NotFoundError
from complianceos.services.scoring import percentage

logger = structlog.get_logger(__name__)

NOT_APPLICABLE = "not_applicable"


# ── Score ────────────────────────────────────────────────────────────────


async def compute_compliance_score(db: AsyncSession, client_id: uuid.UUID) -> dict:
    """Score = implemented / applicable controls, plus evidence status counts."""
    rows = await db.execute(
        select(ClientControl.status, func.count())
        .where(
            ClientControl.client_id == client_id,
            ClientControl.applicability != NOT_APPLICABLE,
        )
        .group_by(ClientControl.status)
    )
    by_status = dict(rows.all())
    total = sum(by_status.values())
    implemented = by_status.get("implemented", 0)

    evidence_rows = await db.execute(
        select(Evidence.status, func.count())
        .where(Evidence.client_id == client_id)
        .group_by(Evidence.status)
    )
    evidence = dict(evidence_rows.all())

    return {
        "score": percentage(implemented, total),
        "total_controls": total,
        "implemented": implemented,
        "in_progress": by_status.get("in_progress", 0),
        "not_implemented": by_status.get("not_implemented", 0),
        "evidence": {
            "verified": evidence.get("verified", 0),
            "pending": evidence.get("pending", 0),
            "expired": evidence.get("expired", 0),
        },
    }


async def get_compliance_score(db: AsyncSession, client_id: uuid.UUID) -> dict:
    key = score_key(str(client_id))
    cached = await cache_get(key)
    if cached is not None:
        return cached
    result = await compute_compliance_score(db, client_id)
    await cache_set(key, result)
    return result


async def framework_breakdown(db: AsyncSession, client_id: uuid.UUID) -> list[dict]:
    """Per adopted framework: {framework, total, implemented, score}."""
    rows = await db.execute(
        select(Framework.name, ClientControl.status, func.count())
        .join(Framework, Framework.id == ClientControl.framework_id)
        .where(
            ClientControl.client_id == client_id,
            ClientControl.applicability != NOT_APPLICABLE,
        )
        .group_by(Framework.name, ClientControl.status)
    )
    totals: dict[str, dict[str, int]] = {}
    for name, status, count in rows.all():
        entry = totals.setdefault(name, {"total": 0, "implemented": 0})
        entry["total"] += count
        if status == "implemented":
            entry["implemented"] += count
    return [
        {
            "framework": name,
            "total": entry["total"],
            "implemented": entry["implemented"],
            "score": percentage(entry["implemented"], entry["total"]),
        }
        for name, entry in sorted(totals.items())
    ]


# ── Policy coverage ──────────────────────────────────────────────────────


async def policy_coverage(db: AsyncSession, client_id: uuid.UUID) -> dict:
    total = await db.scalar(
        select(func.count()).select_from(ClientControl).where(ClientControl.client_id == client_id)
    ) or 0
    mapped = await db.scalar(
        select(func.count(distinct(ControlPolicyMapping.client_control_id))).where(
            ControlPolicyMapping.client_id == client_id
        )
    ) or 0

    mapped_ids = select(ControlPolicyMapping.client_control_id).where(
        ControlPolicyMapping.client_id == client_id
    )
    unmapped_rows = await db.execute(
        select(ClientControl.id, Control.control_code, Control.name)
        .join(Control, Control.id == ClientControl.control_id)
        .where(
            ClientControl.client_id == client_id,
            ClientControl.id.not_in(mapped_ids),
        )
        .order_by(Control.control_code)
        .limit(50)
    )
    return {
        "total": total,
        "mapped": mapped,
        "coverage": percentage(mapped, total),
        "unmapped_controls": [
            {"client_control_id": str(cc_id), "control_code": code, "name": name}
            for cc_id, code, name in unmapped_rows.all()
        ],
    }


async def add_policy_mapping(
    db: AsyncSession, client_id: uuid.UUID, client_control_id: uuid.UUID, client_policy_id: uuid.UUID
) -> ControlPolicyMapping:
    control = await db.scalar(
        select(func.count()).select_from(ClientControl).where(
            ClientControl.id == client_control_id, ClientControl.client_id == client_id
        )
    )
    policy = await db.scalar(
        select(func.count()).select_from(ClientPolicy).where(
            ClientPolicy.id == client_policy_id, ClientPolicy.client_id == client_id
        )
    )
    if not control or not policy:
        raise NotFoundError("Control or policy not found")

    existing = (
        await db.execute(
            select(ControlPolicyMapping).where(
                ControlPolicyMapping.client_control_id == client_control_id,
                ControlPolicyMapping.client_policy_id == client_policy_id,
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("Control is already mapped to this policy")

    mapping = ControlPolicyMapping(
        client_id=client_id,
        client_control_id=client_control_id,
        client_policy_id=client_policy_id,
    )
    db.add(mapping)
    await db.flush()
    return mapping


async def remove_policy_mapping(
    db: AsyncSession, client_id: uuid.UUID, client_control_id: uuid.UUID, client_policy_id: uuid.UUID
) -> None:
    result = await db.execute(
        delete(ControlPolicyMapping).where(
            ControlPolicyMapping.client_id == client_id,
            ControlPolicyMapping.client_control_id == client_control_id,
            ControlPolicyMapping.client_policy_id == client_policy_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("Mapping not found")


# ── Onboarding & dashboard ───────────────────────────────────────────────


async def _exists(db: AsyncSession, model, client_id: uuid.UUID) -> bool:
    return (
        await db.execute(select(model.id).where(model.client_id == client_id).limit(1))
    ).scalar_one_or_none() is not None


async def onboarding_status(db: AsyncSession, client_id: uuid.UUID) -> dict:
    members = await db.scalar(
        select(func.count()).select_from(ClientMembership).where(ClientMembership.client_id == client_id)
    ) or 0
    flags = {
        "has_frameworks": await _exists(db, ClientControl, client_id),
        "has_users": members > 1,
        "has_policies": await _exists(db, ClientPolicy, client_id),
        "has_evidence": await _exists(db, Evidence, client_id),
        "has_vendors": await _exists(db, Vendor, client_id),
        "has_risks": await _exists(db, RiskAssessment, client_id),
    }
    completed = sum(1 for done in flags.values() if done)
    return {
        **flags,
        "completed_steps": completed,
        "total_steps": len(flags),
        "completion_pct": percentage(completed, len(flags)),
    }


async def dashboard(db: AsyncSession, client_id: uuid.UUID, today: Optional[date] = None) -> dict:
    key = dashboard_key(str(client_id))
    cached = await cache_get(key)
    if cached is not None:
        return cached

    from complianceos.services.vendor_service import vendor_stats

    today = today or date.today()
    open_tasks = await db.scalar(
        select(func.count()).select_from(ProjectTask).where(
            ProjectTask.client_id == client_id,
            ProjectTask.status != "done",
        )
    ) or 0
    overdue = await risk_service.overdue_items(db, client_id, limit=1000, today=today)
    upcoming = await risk_service.upcoming_items(db, client_id, days=7, today=today)

    result = {
        "compliance": await get_compliance_score(db, client_id),
        "open_tasks": open_tasks,
        "overdue_count": len(overdue),
        "upcoming_count": len(upcoming),
        "vendors": (await vendor_stats(db, client_id)).model_dump(),
        "risk_levels": await risk_service.level_distribution(db, client_id),
    }
    await cache_set(key, result)
    return result


# ── Frameworks & client controls ─────────────────────────────────────────


async def adopt_framework(
    db: AsyncSession, client_id: uuid.UUID, framework: Framework
) -> dict:
    """Create a client control for every framework control not yet adopted."""
    control_ids = (
        await db.execute(select(Control.id).where(Control.framework_id == framework.id))
    ).scalars().all()
    adopted = set(
        (
            await db.execute(
                select(ClientControl.control_id).where(
                    ClientControl.client_id == client_id,
                    ClientControl.framework_id == framework.id,
                )
            )
        ).scalars().all()
    )

    added = 0
    for control_id in control_ids:
        if control_id in adopted:
            continue
        db.add(
            ClientControl(
                client_id=client_id,
                control_id=control_id,
                framework_id=framework.id,
                status="not_implemented",
                applicability="applicable",
            )
        )
        added += 1
    await db.flush()
    await invalidate_client_scores(str(client_id))

    logger.info(
        "framework_adopted",
        client_id=str(client_id),
        framework=framework.code,
        added=added,
        skipped=len(control_ids) - added,
    )
    return {"added": added, "skipped": len(control_ids) - added}


async def update_client_control(
    db: AsyncSession,
    client_id: uuid.UUID,
    client_control_id: uuid.UUID,
    data: ClientControlUpdate,
    today: Optional[date] = None,
) -> ClientControl:
    control = (
        await db.execute(
            select(ClientControl).where(
                ClientControl.id == client_control_id,
                ClientControl.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if control is None:
        raise NotFoundError("Control not found")

    values = data.model_dump(exclude_unset=True)
    applicability = values.get("applicability") or control.applicability
    justification = values.get("justification", control.justification)
    if applicability == NOT_APPLICABLE and not (justification or "").strip():
        raise DomainError("A justification is required to mark a control not applicable")

    for key, value in values.items():
        setattr(control, key, value)

    if control.status == "implemented" and control.implementation_date is None:
        control.implementation_date = today or date.today()

    await db.flush()
    await invalidate_client_scores(str(client_id))
    return control


async def mark_control_implemented(
    db: AsyncSession, client_id: uuid.UUID, client_control_id: uuid.UUID, today: Optional[date] = None
) -> Optional[ClientControl]:
    control = (
        await db.execute(
            select(ClientControl).where(
                ClientControl.id == client_control_id,
                ClientControl.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if control is None:
        return None
    control.status = "implemented"
    if control.implementation_date is None:
        control.implementation_date = today or date.today()
    await db.flush()
    return control


async def overdue_control_count(db: AsyncSession, client_id: uuid.UUID, today: date) -> int:
    return await db.scalar(
        select(func.count()).select_from(ClientControl).where(
            ClientControl.client_id == client_id,
            ClientControl.status != "implemented",
            ClientControl.applicability != NOT_APPLICABLE,
            ClientControl.due_date < today,
        )
    ) or 0


# ── Client deletion ──────────────────────────────────────────────────────


async def delete_client(db: AsyncSession, client: Client) -> None:
    """Delete a client and every workspace row it owns. Audit entries are kept."""
    client_id = client.id

    policy_ids = select(ClientPolicy.id).where(ClientPolicy.client_id == client_id)
    gap_ids = select(GapAssessment.id).where(GapAssessment.client_id == client_id)
    bia_ids = select(BusinessImpactAnalysis.id).where(BusinessImpactAnalysis.client_id == client_id)

    await db.execute(delete(PolicyVersion).where(PolicyVersion.client_policy_id.in_(policy_ids)))
    await db.execute(delete(GapResponse).where(GapResponse.assessment_id.in_(gap_ids)))
    await db.execute(delete(RecoveryObjective).where(RecoveryObjective.bia_id.in_(bia_ids)))

    # Children before parents
    for model in (
        EvidenceFile,
        Evidence,
        RiskTreatment,
        RiskAssessment,
        Threat,
        Vulnerability,
        ControlPolicyMapping,
        PolicyAssignment,
        PolicyException,
        ClientPolicy,
        Employee,
        VendorDpa,
        Vendor,
        GapAssessment,
        ProjectTask,
        BusinessImpactAnalysis,
        BusinessProcess,
        BcPlan,
        BcProgram,
        NotificationSettings,
        NotificationLog,
        Invitation,
        ClientControl,
        ClientMembership,
    ):
        await db.execute(delete(model).where(model.client_id == client_id))

    await db.delete(client)
    await db.flush()
    await invalidate_client_scores(str(client_id))
    logger.info("client_deleted", client_id=str(client_id))
