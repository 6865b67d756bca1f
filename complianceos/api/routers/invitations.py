"""Invitation endpoints. lookup and accept are public (token-authenticated)."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import get_current_user, get_db
from complianceos.auth.rbac import Permission, check_permission
from complianceos.auth.router import hash_password, issue_token
from complianceos.auth.schemas import TokenResponse
from complianceos.db.models import User
from complianceos.schemas.invitation import InvitationAccept, InvitationCreate, InvitationLookup, InvitationResponse
from complianceos.services import invitation_service
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/invitations", tags=["invitations"])


@router.post("", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    body: InvitationCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Invite someone to the organization, optionally into a client workspace."""
    check_permission(request, Permission.INVITATIONS_MANAGE)
    invitation = await invitation_service.create_invitation(db, user, body)
    await get_audit_service().log_request_event(
        db, request,
        action="invitation_sent",
        organization_id=user.organization_id,
        client_id=invitation.client_id,
        user_id=user.id,
        resource_type="invitation",
        resource_id=str(invitation.id),
        details={"email": invitation.email, "role": invitation.role},
    )
    out = InvitationResponse.model_validate(invitation)
    out.inviter_name = user.name
    out.inviter_email = user.email
    return out


@router.get("", response_model=list[InvitationResponse])
async def list_invitations(
    request: Request,
    status: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Invitations of the organization, newest first."""
    check_permission(request, Permission.INVITATIONS_MANAGE)
    return await invitation_service.list_invitations(db, user.organization_id, status=status)


@router.get("/lookup", response_model=InvitationLookup)
async def lookup_invitation(
    token: str = Query(..., min_length=1, max_length=128),
    db: AsyncSession = Depends(get_db),
):
    """Public details of an invitation for the accept page."""
    return await invitation_service.lookup(db, token)


@router.post("/accept", response_model=TokenResponse, status_code=201)
async def accept_invitation(
    body: InvitationAccept,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Accept an invitation: creates the user and returns a token."""
    user = await invitation_service.accept(db, body, hash_password(body.password))
    await get_audit_service().log_request_event(
        db, request,
        action="invitation_accepted",
        organization_id=user.organization_id,
        user_id=user.id,
        resource_type="user",
        resource_id=str(user.id),
    )
    return issue_token(user)


@router.post("/{invitation_id}/revoke", response_model=InvitationResponse)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Revoke a pending invitation."""
    check_permission(request, Permission.INVITATIONS_MANAGE)
    invitation = await invitation_service.revoke_invitation(db, user.organization_id, invitation_id)
    await get_audit_service().log_request_event(
        db, request,
        action="invitation_revoked",
        organization_id=user.organization_id,
        user_id=user.id,
        resource_type="invitation",
        resource_id=str(invitation.id),
    )
    return invitation


@router.delete("/{invitation_id}", status_code=204)
async def delete_invitation(
    invitation_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete an invitation."""
    check_permission(request, Permission.INVITATIONS_MANAGE)
    await invitation_service.delete_invitation(db, user.organization_id, invitation_id)
