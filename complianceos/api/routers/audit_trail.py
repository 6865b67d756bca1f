"""
Audit trail endpoints (organization admins and owners).

GET /api/v1/audit-trail        - the organization's events, newest first
GET /api/v1/audit-trail/verify - hash chain integrity check
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import get_current_user, get_db
from complianceos.auth.rbac import Permission, check_permission
from complianceos.db.models import User
from complianceos.schemas.audit import AuditEventResponse, AuditIntegrityResponse, AuditTrailResponse
from complianceos.services.security_audit import AuditQuery, get_audit_service

router = APIRouter(prefix="/api/v1/audit-trail", tags=["audit"])


@router.get("", response_model=AuditTrailResponse)
async def list_audit_trail(
    request: Request,
    action: Optional[str] = Query(default=None),
    resource_type: Optional[str] = Query(default=None),
    client_id: Optional[uuid.UUID] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_permission(request, Permission.AUDIT_READ)
    query = AuditQuery(
        organization_id=user.organization_id,
        action=action,
        resource_type=resource_type,
        client_id=client_id,
        offset=offset,
        limit=limit,
    )
    events, total = await get_audit_service().list_events(db, query)
    return AuditTrailResponse(
        events=[AuditEventResponse.from_entry(e) for e in events],
        total=total,
        has_more=offset + len(events) < total,
    )


@router.get("/verify", response_model=AuditIntegrityResponse)
async def verify_integrity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """The chain spans every organization; only its integrity is reported."""
    check_permission(request, Permission.AUDIT_READ)
    return await get_audit_service().verify_chain_integrity(db)
