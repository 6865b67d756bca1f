"""
Business Continuity Service.

Recovery durations are strings like "30m", "4h" or "2d". When present they
must satisfy rpo <= rto <= mtpd.

Readiness (0..100):
    bia_part  = completed_or_approved_bias / max(processes, 1) * 30
    plan_part = approved_plans / max(processes, 1) * 40
    test_part = min(tested_plans / max(plans, 1), 1) * 30
"""

import re
import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import BcPlan, BcProgram, BusinessImpactAnalysis, BusinessProcess, RecoveryObjective
from complianceos.schemas.bcp import ProgramUpsert, RecoveryObjectiveCreate
from complianceos.services.exceptions import DomainError, NotFoundError, TransitionError
from complianceos.services.scoring import round_half_up

logger = structlog.get_logger(__name__)

DEFAULT_PROGRAM_NAME = "Business Continuity Management Program"

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([mhd])\s*$", re.IGNORECASE)
_UNIT_MINUTES = {"m": 1, "h": 60, "d": 1440}

# current status → allowed next statuses (any → draft is always allowed)
BIA_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"in_progress"}),
    "in_progress": frozenset({"completed"}),
    "completed": frozenset({"approved"}),
    "approved": frozenset(),
}


def parse_duration(value: str) -> float:
    """Duration string → minutes. Raises DomainError on an invalid format."""
    match = _DURATION.match(value or "")
    if not match:
        raise DomainError(f"Invalid duration '{value}': use a number followed by m, h or d")
    return float(match.group(1)) * _UNIT_MINUTES[match.group(2).lower()]


def validate_objectives(rto: Optional[str], rpo: Optional[str], mtpd: Optional[str]) -> None:
    """Check formats and ordering rpo <= rto <= mtpd for the values provided."""
    parsed = {name: parse_duration(value) for name, value in (("rto", rto), ("rpo", rpo), ("mtpd", mtpd)) if value}
    if "rpo" in parsed and "rto" in parsed and parsed["rpo"] > parsed["rto"]:
        raise DomainError("RPO cannot exceed RTO")
    if "rto" in parsed and "mtpd" in parsed and parsed["rto"] > parsed["mtpd"]:
        raise DomainError("RTO cannot exceed MTPD")
    if "rpo" in parsed and "mtpd" in parsed and parsed["rpo"] > parsed["mtpd"]:
        raise DomainError("RPO cannot exceed MTPD")


def readiness_score(processes: int, completed_bias: int, approved_plans: int, plans: int, tested_plans: int) -> int:
    bia_part = completed_bias / max(processes, 1) * 30
    plan_part = approved_plans / max(processes, 1) * 40
    test_part = min(tested_plans / max(plans, 1), 1) * 30
    return min(100, round_half_up(bia_part + plan_part + test_part))


# ── Program ──────────────────────────────────────────────────────────────


async def get_program(db: AsyncSession, client_id: uuid.UUID) -> BcProgram:
    program = (
        await db.execute(select(BcProgram).where(BcProgram.client_id == client_id))
    ).scalar_one_or_none()
    if program is None:
        raise NotFoundError("Business continuity program not found")
    return program


async def upsert_program(db: AsyncSession, client_id: uuid.UUID, data: ProgramUpsert) -> BcProgram:
    program = (
        await db.execute(select(BcProgram).where(BcProgram.client_id == client_id))
    ).scalar_one_or_none()
    if program is None:
        program = BcProgram(client_id=client_id, program_name=DEFAULT_PROGRAM_NAME, status="draft")
        db.add(program)
    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(program, key, value)
    await db.flush()
    return program


# ── Processes ────────────────────────────────────────────────────────────


async def get_process(db: AsyncSession, client_id: uuid.UUID, process_id: uuid.UUID) -> BusinessProcess:
    process = (
        await db.execute(
            select(BusinessProcess).where(
                BusinessProcess.id == process_id,
                BusinessProcess.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if process is None:
        raise NotFoundError("Business process not found")
    return process


async def delete_process(db: AsyncSession, client_id: uuid.UUID, process_id: uuid.UUID) -> None:
    process = await get_process(db, client_id, process_id)
    bias = (
        await db.execute(select(BusinessImpactAnalysis).where(BusinessImpactAnalysis.process_id == process.id))
    ).scalars().all()
    for bia in bias:
        objectives = (
            await db.execute(select(RecoveryObjective).where(RecoveryObjective.bia_id == bia.id))
        ).scalars().all()
        for objective in objectives:
            await db.delete(objective)
        await db.delete(bia)
    await db.delete(process)
    await db.flush()


# ── BIAs ─────────────────────────────────────────────────────────────────


async def get_bia(db: AsyncSession, client_id: uuid.UUID, bia_id: uuid.UUID) -> BusinessImpactAnalysis:
    bia = (
        await db.execute(
            select(BusinessImpactAnalysis).where(
                BusinessImpactAnalysis.id == bia_id,
                BusinessImpactAnalysis.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if bia is None:
        raise NotFoundError("BIA not found")
    return bia


async def create_bia(
    db: AsyncSession, client_id: uuid.UUID, process_id: uuid.UUID, title: str, methodology: Optional[str]
) -> BusinessImpactAnalysis:
    process = await get_process(db, client_id, process_id)
    bia = BusinessImpactAnalysis(
        client_id=client_id,
        process_id=process.id,
        title=title,
        methodology=methodology,
        status="draft",
    )
    db.add(bia)
    await db.flush()
    return bia


async def set_bia_status(
    db: AsyncSession, client_id: uuid.UUID, bia_id: uuid.UUID, status: str, user_id: uuid.UUID
) -> BusinessImpactAnalysis:
    bia = await get_bia(db, client_id, bia_id)
    if status != "draft" and status not in BIA_TRANSITIONS.get(bia.status, frozenset()):
        raise TransitionError(f"Cannot move BIA from {bia.status} to {status}")

    bia.status = status
    if status == "approved":
        bia.approved_by = user_id
        bia.approved_at = datetime.utcnow()
    elif status == "draft":
        bia.approved_by = None
        bia.approved_at = None
    await db.flush()
    logger.info("bia_status_changed", bia_id=str(bia.id), status=status)
    return bia


async def list_objectives(db: AsyncSession, bia_id: uuid.UUID) -> list[RecoveryObjective]:
    return list(
        (
            await db.execute(
                select(RecoveryObjective)
                .where(RecoveryObjective.bia_id == bia_id)
                .order_by(RecoveryObjective.created_at)
            )
        ).scalars().all()
    )


async def add_recovery_objective(
    db: AsyncSession, client_id: uuid.UUID, bia_id: uuid.UUID, data: RecoveryObjectiveCreate
) -> RecoveryObjective:
    bia = await get_bia(db, client_id, bia_id)
    validate_objectives(data.rto, data.rpo, data.mtpd)
    objective = RecoveryObjective(bia_id=bia.id, **data.model_dump())
    db.add(objective)
    await db.flush()
    return objective


# ── Dashboard ────────────────────────────────────────────────────────────


async def _count(db: AsyncSession, model, client_id: uuid.UUID, *criteria) -> int:
    return await db.scalar(
        select(func.count()).select_from(model).where(model.client_id == client_id, *criteria)
    ) or 0


async def dashboard(db: AsyncSession, client_id: uuid.UUID) -> dict:
    processes = await _count(db, BusinessProcess, client_id)
    bias = await _count(db, BusinessImpactAnalysis, client_id)
    completed_bias = await _count(
        db, BusinessImpactAnalysis, client_id, BusinessImpactAnalysis.status.in_(("completed", "approved"))
    )
    plans = await _count(db, BcPlan, client_id)
    approved_plans = await _count(db, BcPlan, client_id, BcPlan.status == "approved")
    tested_plans = await _count(db, BcPlan, client_id, BcPlan.last_tested_date.is_not(None))

    program = (
        await db.execute(select(BcProgram.status).where(BcProgram.client_id == client_id))
    ).scalar_one_or_none()

    return {
        "readiness_score": readiness_score(processes, completed_bias, approved_plans, plans, tested_plans),
        "program_status": program,
        "processes": processes,
        "bias": bias,
        "completed_bias": completed_bias,
        "plans": plans,
        "approved_plans": approved_plans,
        "tested_plans": tested_plans,
    }
