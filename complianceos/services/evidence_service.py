"""
Evidence Service.

Status changes propagate into the control and risk registers:
verified evidence implements its linked client control, which in turn marks
every risk treatment on that control effective and rescores the affected
assessments. Expired or rejected evidence never downgrades a control.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Optional

import structlog
from fastapi import UploadFile
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.config import settings
from complianceos.db.models import ClientControl, Evidence, EvidenceFile
from complianceos.schemas.evidence import EvidenceCreate, IntegrationLink
from complianceos.services import compliance, risk_service, storage
from complianceos.services.cache import invalidate_client_scores
from complianceos.services.exceptions import DomainError, NotFoundError

logger = structlog.get_logger(__name__)

LOCATION_MAX_LENGTH = 1024


async def get_evidence(db: AsyncSession, client_id: uuid.UUID, evidence_id: uuid.UUID) -> Evidence:
    evidence = (
        await db.execute(
            select(Evidence).where(Evidence.id == evidence_id, Evidence.client_id == client_id)
        )
    ).scalar_one_or_none()
    if evidence is None:
        raise NotFoundError("Evidence not found")
    return evidence


async def create_evidence(db: AsyncSession, client_id: uuid.UUID, data: EvidenceCreate) -> Evidence:
    if data.client_control_id is not None:
        found = (
            await db.execute(
                select(ClientControl.id).where(
                    ClientControl.id == data.client_control_id,
                    ClientControl.client_id == client_id,
                )
            )
        ).scalar_one_or_none()
        if found is None:
            raise DomainError("Linked control does not belong to this client")

    evidence = Evidence(client_id=client_id, status="pending", **data.model_dump())
    db.add(evidence)
    await db.flush()
    await invalidate_client_scores(str(client_id))
    return evidence


async def set_status(
    db: AsyncSession,
    client_id: uuid.UUID,
    evidence_id: uuid.UUID,
    status: str,
    today: Optional[date] = None,
) -> tuple[Evidence, str]:
    """Update evidence status and propagate verification. Returns (evidence, previous status)."""
    evidence = await get_evidence(db, client_id, evidence_id)
    previous = evidence.status
    evidence.status = status

    if status == "verified":
        evidence.last_verified = datetime.utcnow()
        if evidence.client_control_id is not None:
            await compliance.mark_control_implemented(db, client_id, evidence.client_control_id, today=today)
            rescored = await risk_service.mark_controls_effective(db, client_id, evidence.client_control_id)
            logger.info(
                "evidence_verified",
                evidence_id=str(evidence.id),
                client_id=str(client_id),
                client_control_id=str(evidence.client_control_id),
                assessments_rescored=rescored,
            )

    await db.flush()
    await invalidate_client_scores(str(client_id))
    return evidence, previous


async def link_integration(
    db: AsyncSession, client_id: uuid.UUID, evidence_id: uuid.UUID, data: IntegrationLink
) -> Evidence:
    evidence = await get_evidence(db, client_id, evidence_id)
    evidence.integration = data.integration
    evidence.location = data.location[:LOCATION_MAX_LENGTH]
    evidence.evidence_type = "api"
    evidence.status = "collected"
    await db.flush()
    await invalidate_client_scores(str(client_id))
    return evidence


async def delete_evidence(db: AsyncSession, client_id: uuid.UUID, evidence_id: uuid.UUID) -> None:
    evidence = await get_evidence(db, client_id, evidence_id)
    files = (
        await db.execute(select(EvidenceFile).where(EvidenceFile.evidence_id == evidence.id))
    ).scalars().all()
    for record in files:
        await _delete_file_record(db, record)
    await db.delete(evidence)
    await db.flush()
    await invalidate_client_scores(str(client_id))


# ── Files ────────────────────────────────────────────────────────────────


async def upload_file(
    db: AsyncSession,
    client_id: uuid.UUID,
    evidence_id: uuid.UUID,
    upload: UploadFile,
    user_id: Optional[uuid.UUID] = None,
) -> EvidenceFile:
    evidence = await get_evidence(db, client_id, evidence_id)
    stored = await storage.save_upload(client_id, upload)
    storage.discard_on_rollback(db, stored.key)

    record = EvidenceFile(
        client_id=client_id,
        evidence_id=evidence.id,
        filename=stored.filename,
        file_url=stored.url,
        file_key=stored.key,
        content_type=stored.content_type,
        file_size=stored.size,
        uploaded_by=user_id,
    )
    db.add(record)
    if evidence.status == "pending":
        evidence.status = "collected"
    await db.flush()
    await invalidate_client_scores(str(client_id))
    return record


async def link_existing_file(
    db: AsyncSession, client_id: uuid.UUID, evidence_id: uuid.UUID, file_id: uuid.UUID
) -> EvidenceFile:
    """Attach a file already uploaded to another evidence item of the same client."""
    evidence = await get_evidence(db, client_id, evidence_id)
    source = await get_file(db, client_id, file_id)

    record = EvidenceFile(
        client_id=client_id,
        evidence_id=evidence.id,
        filename=source.filename,
        file_url=source.file_url,
        file_key=source.file_key,
        content_type=source.content_type,
        file_size=source.file_size,
        uploaded_by=source.uploaded_by,
    )
    db.add(record)
    if evidence.status == "pending":
        evidence.status = "collected"
    await db.flush()
    return record


async def get_file(db: AsyncSession, client_id: uuid.UUID, file_id: uuid.UUID) -> EvidenceFile:
    record = (
        await db.execute(
            select(EvidenceFile).where(EvidenceFile.id == file_id, EvidenceFile.client_id == client_id)
        )
    ).scalar_one_or_none()
    if record is None:
        raise NotFoundError("File not found")
    return record


async def _delete_file_record(db: AsyncSession, record: EvidenceFile) -> None:
    # Linked copies share the stored object; only remove it with the last record
    others = (
        await db.execute(
            select(EvidenceFile.id).where(
                EvidenceFile.file_key == record.file_key,
                EvidenceFile.id != record.id,
            ).limit(1)
        )
    ).scalar_one_or_none()
    await db.delete(record)
    if others is None:
        storage.delete_after_commit(db, record.file_key)


async def delete_file(db: AsyncSession, client_id: uuid.UUID, file_id: uuid.UUID) -> None:
    record = await get_file(db, client_id, file_id)
    await _delete_file_record(db, record)
    await db.flush()


# ── Expiry ───────────────────────────────────────────────────────────────


async def expire_stale_evidence(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Verified evidence older than EVIDENCE_VALIDITY_DAYS becomes expired."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=settings.evidence_validity_days)
    stale_clients = (
        await db.execute(
            select(Evidence.client_id).distinct().where(
                Evidence.status == "verified",
                Evidence.last_verified < cutoff,
            )
        )
    ).scalars().all()

    result = await db.execute(
        update(Evidence)
        .where(Evidence.status == "verified", Evidence.last_verified < cutoff)
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    for client_id in stale_clients:
        await invalidate_client_scores(str(client_id))

    if result.rowcount:
        logger.info("evidence_expired", count=result.rowcount)
    return result.rowcount or 0
