"""
Security Audit Trail Service.

Append-only record of security and domain events (logins, invitations,
evidence reviews, policy publication, risk approvals...). Entries form one
global hash chain ordered by `sequence`: each entry hashes its own fields
together with the previous entry's hash, so editing, deleting or
reordering any row breaks verification from that point on.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.compat import insert_or_ignore
from complianceos.db.models import AuditChainHead, SecurityAuditLog

logger = structlog.get_logger(__name__)

MAX_REPORTED_BREAKS = 10
CHAIN_HEAD_ID = 1

_HEAD = AuditChainHead.__table__


def _compute_entry_hash(
    sequence: int,
    entry_id: str,
    timestamp: str,
    action: str,
    organization_id: str,
    client_id: str,
    user_id: str,
    resource: str,
    status: str,
    previous_hash: str,
) -> str:
    payload = "|".join((
        str(sequence), entry_id, timestamp, action, organization_id,
        client_id, user_id, resource, status, previous_hash,
    ))
    return hashlib.sha256(payload.encode()).hexdigest()


def _entry_hash(entry: SecurityAuditLog) -> str:
    return _compute_entry_hash(
        sequence=entry.sequence,
        entry_id=str(entry.id),
        timestamp=entry.timestamp.isoformat(),
        action=entry.action,
        organization_id=str(entry.organization_id or ""),
        client_id=str(entry.client_id or ""),
        user_id=str(entry.user_id or ""),
        resource=f"{entry.resource_type or ''}:{entry.resource_id or ''}",
        status=entry.status,
        previous_hash=entry.previous_hash or "",
    )


def get_client_ip(request: Request) -> str:
    """Caller IP, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@dataclass
class AuditQuery:
    organization_id: uuid.UUID
    action: Optional[str] = None
    resource_type: Optional[str] = None
    client_id: Optional[uuid.UUID] = None
    offset: int = 0
    limit: int = 50


class SecurityAuditService:
    async def log_event(
        self,
        session: AsyncSession,
        *,
        action: str,
        status: str = "success",
        organization_id: Optional[uuid.UUID] = None,
        client_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_method: Optional[str] = None,
        request_path: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> SecurityAuditLog:
        """Append one event to the chain. Flushed, not committed."""
        sequence, previous_hash = await self._claim_next_sequence(session)

        entry = SecurityAuditLog(
            id=uuid.uuid4(),
            sequence=sequence,
            timestamp=datetime.utcnow(),
            organization_id=organization_id,
            client_id=client_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
            user_agent=user_agent,
            request_method=request_method,
            request_path=request_path,
            status=status,
            details=details,
            previous_hash=previous_hash,
        )
        entry.entry_hash = _entry_hash(entry)

        session.add(entry)
        await session.execute(
            update(_HEAD).where(_HEAD.c.id == CHAIN_HEAD_ID).values(last_hash=entry.entry_hash)
        )
        await session.flush()

        logger.info(
            "security_audit_logged",
            action=action,
            status=status,
            sequence=entry.sequence,
            organization_id=str(organization_id) if organization_id else None,
            client_id=str(client_id) if client_id else None,
        )
        return entry

    async def _claim_next_sequence(self, session: AsyncSession) -> tuple[int, Optional[str]]:
        """Advance the chain head and return (sequence, previous hash).

        The head row stays locked until the caller's transaction ends, so a
        concurrent append waits and then continues from this entry.
        """
        advance = (
            update(_HEAD)
            .where(_HEAD.c.id == CHAIN_HEAD_ID)
            .values(last_sequence=_HEAD.c.last_sequence + 1)
            .returning(_HEAD.c.last_sequence, _HEAD.c.last_hash)
        )
        claimed = (await session.execute(advance)).first()
        if claimed is None:
            await self._create_head(session)
            claimed = (await session.execute(advance)).one()
        return claimed.last_sequence, claimed.last_hash

    async def _create_head(self, session: AsyncSession) -> None:
        # Entries written before the head row existed are continued, not restarted
        newest = (
            await session.execute(
                select(SecurityAuditLog.sequence, SecurityAuditLog.entry_hash)
                .order_by(SecurityAuditLog.sequence.desc())
                .limit(1)
            )
        ).first()
        await session.execute(
            insert_or_ignore(session.get_bind().dialect, _HEAD).values(
                id=CHAIN_HEAD_ID,
                last_sequence=newest.sequence if newest else 0,
                last_hash=newest.entry_hash if newest else None,
            )
        )

    async def log_request_event(
        self,
        session: AsyncSession,
        request: Request,
        *,
        action: str,
        **kwargs,
    ) -> SecurityAuditLog:
        """log_event() with IP, user agent, method and path taken from the request."""
        return await self.log_event(
            session,
            action=action,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent", "")[:500],
            request_method=request.method,
            request_path=request.url.path,
            **kwargs,
        )

    async def list_events(self, session: AsyncSession, query: AuditQuery) -> tuple[list[SecurityAuditLog], int]:
        """One organization's events, newest first, with the total matching count."""
        stmt = select(SecurityAuditLog).where(SecurityAuditLog.organization_id == query.organization_id)
        if query.action:
            stmt = stmt.where(SecurityAuditLog.action == query.action)
        if query.resource_type:
            stmt = stmt.where(SecurityAuditLog.resource_type == query.resource_type)
        if query.client_id:
            stmt = stmt.where(SecurityAuditLog.client_id == query.client_id)

        total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        page = await session.execute(
            stmt.order_by(SecurityAuditLog.sequence.desc()).offset(query.offset).limit(query.limit)
        )
        return list(page.scalars().all()), total

    async def verify_chain_integrity(self, session: AsyncSession) -> dict:
        """Walk the whole chain in sequence order and report every break found."""
        entries = (
            await session.execute(select(SecurityAuditLog).order_by(SecurityAuditLog.sequence))
        ).scalars().all()

        breaks: list[dict] = []
        previous_hash: Optional[str] = None
        expected_sequence = 1

        for entry in entries:
            issues = []
            if entry.sequence != expected_sequence:
                issues.append(("sequence_gap", str(expected_sequence), str(entry.sequence)))
            if entry.previous_hash != previous_hash:
                issues.append(("previous_hash_mismatch", previous_hash, entry.previous_hash))
            recomputed = _entry_hash(entry)
            if entry.entry_hash != recomputed:
                issues.append(("entry_hash_mismatch", recomputed, entry.entry_hash))

            for issue, expected, actual in issues:
                breaks.append({
                    "entry_id": str(entry.id),
                    "sequence": entry.sequence,
                    "timestamp": entry.timestamp.isoformat(),
                    "issue": issue,
                    "expected": expected,
                    "actual": actual,
                })

            previous_hash = entry.entry_hash
            expected_sequence = entry.sequence + 1

        if breaks:
            logger.error("audit_chain_broken", breaks=len(breaks), first_sequence=breaks[0]["sequence"])

        return {
            "status": "empty" if not entries else ("intact" if not breaks else "broken"),
            "total_entries": len(entries),
            "chain_intact": not breaks,
            "breaks_found": len(breaks),
            "breaks": breaks[:MAX_REPORTED_BREAKS],
        }


_audit_service = SecurityAuditService()


def get_audit_service() -> SecurityAuditService:
    return _audit_service
