"""
Invitation Service.

Lifecycle: pending → accepted | revoked | expired.
A new invitation for the same email and client supersedes (revokes) any
pending one. Email delivery failures never fail the invitation itself;
they are recorded in the notification log.
"""

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.config import settings
from complianceos.db.models import Client, ClientMembership, Invitation, Organization, User
from complianceos.notifications.schemas import NotificationChannel, NotificationMessage, NotificationType
from complianceos.schemas.invitation import InvitationAccept, InvitationCreate, InvitationLookup, InvitationResponse
from complianceos.services import notification_service
from complianceos.services.exceptions import ConflictError, DomainError, InvitationError, NotFoundError
from complianceos.services.user_service import email_in_use

logger = structlog.get_logger(__name__)


def accept_url(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/auth/accept-invite?token={token}"


def invitation_email_body(organization_name: str, client_name: Optional[str], role: str, token: str) -> str:
    target = f"the {client_name} workspace" if client_name else organization_name
    return (
        f"You have been invited to join {target} on ComplianceOS as {role}.\n\n"
        f"Accept the invitation here:\n{accept_url(token)}\n\n"
        f"This link expires in {settings.invitation_expire_days} days."
    )


async def _get(db: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID) -> Invitation:
    invitation = (
        await db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()
    if invitation is None:
        raise NotFoundError("Invitation not found")
    return invitation


async def create_invitation(
    db: AsyncSession, inviter: User, data: InvitationCreate
) -> Invitation:
    email = data.email.lower()
    if await email_in_use(db, email):
        raise ConflictError("A user with this email already exists")

    client: Optional[Client] = None
    if data.client_id is not None:
        client = (
            await db.execute(
                select(Client).where(
                    Client.id == data.client_id,
                    Client.organization_id == inviter.organization_id,
                )
            )
        ).scalar_one_or_none()
        if client is None:
            raise NotFoundError("Client not found")

    # Supersede any pending invitation for the same email and client
    supersede = update(Invitation).where(
        Invitation.organization_id == inviter.organization_id,
        Invitation.email == email,
        Invitation.status == "pending",
    )
    supersede = supersede.where(
        Invitation.client_id == data.client_id if data.client_id else Invitation.client_id.is_(None)
    )
    await db.execute(supersede.values(status="revoked").execution_options(synchronize_session="fetch"))

    invitation = Invitation(
        organization_id=inviter.organization_id,
        email=email,
        role=data.role,
        client_id=data.client_id,
        invited_by=inviter.id,
        status="pending",
        token=secrets.token_urlsafe(32),
        expires_at=datetime.utcnow() + timedelta(days=settings.invitation_expire_days),
    )
    db.add(invitation)
    await db.flush()

    organization = await db.get(Organization, inviter.organization_id)
    await send_invitation_email(db, invitation, organization.name, client.name if client else None)

    logger.info(
        "invitation_created",
        invitation_id=str(invitation.id),
        organization_id=str(invitation.organization_id),
        client_id=str(invitation.client_id) if invitation.client_id else None,
    )
    return invitation


async def send_invitation_email(
    db: AsyncSession, invitation: Invitation, organization_name: str, client_name: Optional[str]
) -> bool:
    message = NotificationMessage(
        type=NotificationType.INVITATION,
        title=f"You're invited to {client_name or organization_name} on ComplianceOS",
        body=invitation_email_body(organization_name, client_name, invitation.role, invitation.token),
        client_id=str(invitation.client_id) if invitation.client_id else None,
        client_name=client_name,
        channels=[NotificationChannel.EMAIL],
        to_emails=[invitation.email],
        entity_type="invitation",
        entity_id=str(invitation.id),
    )
    results = await notification_service.deliver(
        db,
        organization_id=invitation.organization_id,
        client_id=invitation.client_id,
        message=message,
    )
    delivered = results[NotificationChannel.EMAIL.value].success
    if not delivered:
        logger.warning(
            "invitation_email_not_sent",
            invitation_id=str(invitation.id),
            detail=results[NotificationChannel.EMAIL.value].detail,
        )
    return delivered


async def list_invitations(
    db: AsyncSession, organization_id: uuid.UUID, status: Optional[str] = None
) -> list[InvitationResponse]:
    stmt = (
        select(Invitation, User.name, User.email)
        .outerjoin(User, User.id == Invitation.invited_by)
        .where(Invitation.organization_id == organization_id)
        .order_by(Invitation.created_at.desc())
    )
    if status:
        stmt = stmt.where(Invitation.status == status)

    out = []
    for invitation, inviter_name, inviter_email in (await db.execute(stmt)).all():
        item = InvitationResponse.model_validate(invitation)
        item.inviter_name = inviter_name
        item.inviter_email = inviter_email
        out.append(item)
    return out


async def revoke_invitation(db: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID) -> Invitation:
    invitation = await _get(db, organization_id, invitation_id)
    if invitation.status != "pending":
        raise DomainError(f"Cannot revoke an invitation that is {invitation.status}")
    invitation.status = "revoked"
    await db.flush()
    return invitation


async def delete_invitation(db: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID) -> None:
    invitation = await _get(db, organization_id, invitation_id)
    await db.delete(invitation)
    await db.flush()


async def _by_token(db: AsyncSession, token: str) -> Invitation:
    invitation = (
        await db.execute(select(Invitation).where(Invitation.token == token))
    ).scalar_one_or_none()
    if invitation is None:
        raise InvitationError("Invitation not found", status_code=404)
    return invitation


async def lookup(db: AsyncSession, token: str) -> InvitationLookup:
    invitation = await _by_token(db, token)
    organization = await db.get(Organization, invitation.organization_id)
    client = await db.get(Client, invitation.client_id) if invitation.client_id else None

    status = invitation.status
    if status == "pending" and invitation.expires_at < datetime.utcnow():
        status = "expired"
    return InvitationLookup(
        email=invitation.email,
        role=invitation.role,
        organization_name=organization.name,
        client_name=client.name if client else None,
        expires_at=invitation.expires_at,
        status=status,
    )


async def accept(db: AsyncSession, data: InvitationAccept, password_hash: str) -> User:
    """
    Accept an invitation and create the user.

    Raises InvitationError: 404 unknown token, 410 expired (the invitation
    is marked expired and committed first), 409 not pending.
    """
    invitation = await _by_token(db, data.token)

    if invitation.status == "pending" and invitation.expires_at < datetime.utcnow():
        invitation.status = "expired"
        await db.commit()
        raise InvitationError("Invitation has expired", status_code=410)
    if invitation.status != "pending":
        raise InvitationError(f"Invitation is {invitation.status}", status_code=409)
    if await email_in_use(db, invitation.email):
        raise ConflictError("A user with this email already exists")

    user = User(
        organization_id=invitation.organization_id,
        email=invitation.email,
        password_hash=password_hash,
        name=data.name,
        role="member",
        is_active=True,
        last_login_at=datetime.utcnow(),
    )
    db.add(user)
    await db.flush()

    if invitation.client_id is not None:
        db.add(ClientMembership(client_id=invitation.client_id, user_id=user.id, role=invitation.role))

    invitation.status = "accepted"
    invitation.accepted_at = datetime.utcnow()
    await db.flush()

    logger.info(
        "invitation_accepted",
        invitation_id=str(invitation.id),
        user_id=str(user.id),
        organization_id=str(user.organization_id),
    )
    return user


async def expire_pending(db: AsyncSession, now: Optional[datetime] = None) -> int:
    result = await db.execute(
        update(Invitation)
        .where(Invitation.status == "pending", Invitation.expires_at < (now or datetime.utcnow()))
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("invitations_expired", count=result.rowcount)
    return result.rowcount or 0
