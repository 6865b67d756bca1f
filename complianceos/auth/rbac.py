"""
Role-based access control.

Two independent ladders:
- organization role on the user row: MEMBER < ADMIN < OWNER
- workspace role on a client membership: VIEWER < EDITOR < ADMIN < OWNER

Organization permissions are granted by role and are cumulative upward.
Workspace checks live in complianceos.auth.workspace.
"""

from enum import Enum, IntEnum
from typing import Optional

import structlog
from fastapi import HTTPException, Request

logger = structlog.get_logger(__name__)


class _RankedRole(IntEnum):
    @classmethod
    def from_str(cls, value: Optional[str]):
        """Case-insensitive lookup; unknown or missing names give the lowest rank."""
        name = (value or "").upper()
        name = cls._aliases().get(name, name)
        return cls.__members__.get(name, min(cls))

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}


class Role(_RankedRole):
    MEMBER = 10
    ADMIN = 40
    OWNER = 50

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        # accounts created before organization roles existed
        return {"USER": "MEMBER"}


class ClientRole(_RankedRole):
    VIEWER = 10
    EDITOR = 20
    ADMIN = 30
    OWNER = 40


class Permission(str, Enum):
    CLIENTS_READ = "clients:read"
    CLIENTS_CREATE = "clients:create"
    CLIENTS_DELETE = "clients:delete"
    FRAMEWORKS_READ = "frameworks:read"
    FRAMEWORKS_MANAGE = "frameworks:manage"
    USERS_MANAGE = "users:manage"
    INVITATIONS_MANAGE = "invitations:manage"
    TEMPLATES_MANAGE = "templates:manage"
    AUDIT_READ = "audit:read"
    DIGESTS_SEND = "digests:send"


# Lowest organization role that holds each permission
_MINIMUM_ROLE: dict[Permission, Role] = {
    Permission.CLIENTS_READ: Role.MEMBER,
    Permission.FRAMEWORKS_READ: Role.MEMBER,
    Permission.CLIENTS_CREATE: Role.ADMIN,
    Permission.CLIENTS_DELETE: Role.ADMIN,
    Permission.FRAMEWORKS_MANAGE: Role.ADMIN,
    Permission.USERS_MANAGE: Role.ADMIN,
    Permission.INVITATIONS_MANAGE: Role.ADMIN,
    Permission.TEMPLATES_MANAGE: Role.ADMIN,
    Permission.AUDIT_READ: Role.ADMIN,
    Permission.DIGESTS_SEND: Role.ADMIN,
}

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    role: frozenset(p for p, minimum in _MINIMUM_ROLE.items() if role >= minimum) for role in Role
}


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def has_role(current_role: Role, minimum_role: Role) -> bool:
    return current_role >= minimum_role


def effective_client_role(org_role: Role, membership_role: Optional[str]) -> Optional[ClientRole]:
    """
    Role a user holds inside one client workspace, or None without access.

    Organization admins and owners act as workspace owners everywhere.
    """
    if org_role >= Role.ADMIN:
        return ClientRole.OWNER
    if membership_role is None:
        return None
    return ClientRole.from_str(membership_role)


def check_permission(request: Request, permission: Permission) -> None:
    """Raise 403 unless the caller's organization role grants `permission`."""
    role = Role.from_str(getattr(request.state, "user_role", None))
    if has_permission(role, permission):
        return

    logger.warning(
        "permission_denied",
        user_id=getattr(request.state, "user_id", None),
        role=role.name,
        required_permission=permission.value,
        path=request.url.path,
    )
    raise HTTPException(
        status_code=403,
        detail={
            "error": "insufficient_permissions",
            "required": permission.value,
            "your_role": role.name.lower(),
        },
    )
