"""
Client workspace access.

Every /clients/{client_id}/... route resolves a WorkspaceAccess first:
- client outside the caller's organization → 404 (existence is not leaked)
- client in the organization but no membership → 403
Role checks on top of that go through require_client_role().
"""

import uuid
from dataclasses import dataclass

import structlog
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.auth.dependencies import get_current_user, get_db
from complianceos.auth.rbac import ClientRole, Role, effective_client_role
from complianceos.db.models import Client, ClientMembership, User

logger = structlog.get_logger(__name__)


@dataclass
class WorkspaceAccess:
    """The caller's resolved access to one client workspace."""

    client: Client
    user: User
    org_role: Role
    role: ClientRole

    @property
    def client_id(self) -> uuid.UUID:
        return self.client.id

    @property
    def organization_id(self) -> uuid.UUID:
        return self.client.organization_id

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id

    def require(self, minimum: ClientRole) -> None:
        """Raise 403 unless the caller holds at least `minimum` in this workspace."""
        if self.role < minimum:
            logger.warning(
                "workspace_role_denied",
                user_id=str(self.user.id),
                client_id=str(self.client.id),
                role=self.role.name,
                required_role=minimum.name,
            )
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "insufficient_workspace_role",
                    "required_role": minimum.name.lower(),
                    "your_role": self.role.name.lower(),
                },
            )


async def resolve_workspace(db: AsyncSession, user: User, client_id: uuid.UUID) -> WorkspaceAccess:
    """Resolve a user's access to a client, raising 404/403 as appropriate."""
    client = (
        await db.execute(
            select(Client).where(
                Client.id == client_id,
                Client.organization_id == user.organization_id,
            )
        )
    ).scalar_one_or_none()
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")

    membership_role = (
        await db.execute(
            select(ClientMembership.role).where(
                ClientMembership.client_id == client_id,
                ClientMembership.user_id == user.id,
            )
        )
    ).scalar_one_or_none()

    org_role = Role.from_str(user.role)
    role = effective_client_role(org_role, membership_role)
    if role is None:
        logger.warning(
            "workspace_access_denied",
            user_id=str(user.id),
            client_id=str(client_id),
        )
        raise HTTPException(
            status_code=403,
            detail={
                "error": "no_workspace_access",
                "required_role": ClientRole.VIEWER.name.lower(),
                "your_role": None,
            },
        )
    return WorkspaceAccess(client=client, user=user, org_role=org_role, role=role)


async def get_workspace(
    client_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> WorkspaceAccess:
    """Dependency: resolve the caller's access to the client in the path."""
    access = await resolve_workspace(db, user, client_id)
    request.state.client_id = str(client_id)
    return access


def require_client_role(minimum: ClientRole):
    """Dependency factory: workspace access with at least `minimum` role."""

    async def _dependency(access: WorkspaceAccess = Depends(get_workspace)) -> WorkspaceAccess:
        access.require(minimum)
        return access

    return _dependency
