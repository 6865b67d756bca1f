"""User and membership helpers shared by the auth, users and clients routers."""

import uuid
from collections import defaultdict
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Client, ClientMembership, User
from complianceos.schemas.user import MembershipInfo, UserResponse


async def memberships_by_user(
    db: AsyncSession, user_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[MembershipInfo]]:
    """Map user_id → memberships (client id, client name, role)."""
    out: dict[uuid.UUID, list[MembershipInfo]] = defaultdict(list)
    if not user_ids:
        return out
    rows = await db.execute(
        select(ClientMembership.user_id, ClientMembership.client_id, Client.name, ClientMembership.role)
        .join(Client, Client.id == ClientMembership.client_id)
        .where(ClientMembership.user_id.in_(list(user_ids)))
        .order_by(Client.name)
    )
    for user_id, client_id, client_name, role in rows.all():
        out[user_id].append(MembershipInfo(client_id=client_id, client_name=client_name, role=role))
    return out


async def to_user_response(db: AsyncSession, users: Sequence[User]) -> list[UserResponse]:
    memberships = await memberships_by_user(db, [u.id for u in users])
    return [
        UserResponse(
            id=u.id,
            organization_id=u.organization_id,
            email=u.email,
            name=u.name,
            role=u.role,
            is_active=u.is_active,
            last_login_at=u.last_login_at,
            created_at=u.created_at,
            memberships=memberships.get(u.id, []),
        )
        for u in users
    ]


def released_email(user: User) -> str:
    """The placeholder email a soft-deleted user keeps so the address can be reused."""
    return f"deleted-{user.id}-{user.email}"[:255]


async def email_in_use(db: AsyncSession, email: str, exclude_user_id: uuid.UUID | None = None) -> bool:
    """True if a user already holds this email. Soft-deleted users release theirs."""
    stmt = select(User.id).where(User.email == email.lower())
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None
