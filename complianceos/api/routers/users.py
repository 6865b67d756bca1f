"""User management endpoints (organization scope) and workspace memberships."""

import uuid
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import get_current_user, get_db
from complianceos.auth.rbac import ClientRole, Permission, Role, check_permission
from complianceos.auth.router import hash_password
from complianceos.auth.workspace import resolve_workspace
from complianceos.db.models import ClientMembership, User
from complianceos.schemas.user import MembershipUpsert, RoleUpdate, UserCreate, UserResponse, UserUpdate
from complianceos.services.security_audit import get_audit_service
from complianceos.services.user_service import email_in_use, released_email, to_user_response

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])


async def _get_user(db: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID) -> User:
    user = (
        await db.execute(
            select(User).where(
                User.id == user_id,
                User.organization_id == organization_id,
                User.deleted_at.is_(None),
            )
        )
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Users of the organization with their memberships."""
    rows = await db.execute(
        select(User)
        .where(User.organization_id == current.organization_id, User.deleted_at.is_(None))
        .order_by(User.name)
    )
    return await to_user_response(db, rows.scalars().all())


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Create a user in the caller's organization."""
    check_permission(request, Permission.USERS_MANAGE)
    if body.role == "owner" and Role.from_str(current.role) < Role.OWNER:
        raise HTTPException(status_code=403, detail="Only an owner can create owners")
    if await email_in_use(db, body.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        organization_id=current.organization_id,
        email=body.email.lower(),
        password_hash=hash_password(body.password),
        name=body.name,
        role=body.role,
    )
    db.add(user)
    await db.flush()

    await get_audit_service().log_request_event(
        db, request,
        action="user_created",
        organization_id=current.organization_id,
        user_id=current.id,
        resource_type="user",
        resource_id=str(user.id),
        details={"role": user.role},
    )
    return (await to_user_response(db, [user]))[0]


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Update name, email or active flag."""
    check_permission(request, Permission.USERS_MANAGE)
    user = await _get_user(db, current.organization_id, user_id)

    values = body.model_dump(exclude_unset=True)
    if values.get("email"):
        values["email"] = values["email"].lower()
        if await email_in_use(db, values["email"], exclude_user_id=user.id):
            raise HTTPException(status_code=409, detail="Email already registered")
    if values.get("is_active") is False and user.id == current.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate yourself")

    for key, value in values.items():
        if value is not None:
            setattr(user, key, value)
    await db.flush()
    return (await to_user_response(db, [user]))[0]


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: uuid.UUID,
    body: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Change a user's organization role."""
    check_permission(request, Permission.USERS_MANAGE)
    if user_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    user = await _get_user(db, current.organization_id, user_id)
    current_role = Role.from_str(current.role)
    if Role.from_str(body.role) == Role.OWNER and current_role < Role.OWNER:
        raise HTTPException(status_code=403, detail="Only an owner can grant the owner role")
    if Role.from_str(user.role) == Role.OWNER and current_role < Role.OWNER:
        raise HTTPException(status_code=403, detail="Only an owner can change another owner's role")

    previous = user.role
    user.role = body.role
    await db.flush()

    await get_audit_service().log_request_event(
        db, request,
        action="user_role_changed",
        organization_id=current.organization_id,
        user_id=current.id,
        resource_type="user",
        resource_id=str(user.id),
        details={"from": previous, "to": body.role},
    )
    return (await to_user_response(db, [user]))[0]


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Soft-delete a user and drop their memberships."""
    check_permission(request, Permission.USERS_MANAGE)
    if user_id == current.id:
        raise HTTPException(status_code=400, detail="You cannot delete yourself")

    user = await _get_user(db, current.organization_id, user_id)
    if Role.from_str(user.role) == Role.OWNER and Role.from_str(current.role) < Role.OWNER:
        raise HTTPException(status_code=403, detail="Only an owner can delete an owner")

    await db.execute(delete(ClientMembership).where(ClientMembership.user_id == user.id))
    original_email = user.email
    user.email = released_email(user)
    user.deleted_at = datetime.utcnow()
    user.is_active = False
    await db.flush()

    logger.info("user_deleted", user_id=str(user.id), organization_id=str(current.organization_id))
    await get_audit_service().log_request_event(
        db, request,
        action="user_deleted",
        organization_id=current.organization_id,
        user_id=current.id,
        resource_type="user",
        resource_id=str(user.id),
        details={"email": original_email},
    )


# ── Workspace memberships ────────────────────────────────────────────────


@router.put("/{user_id}/clients/{client_id}", response_model=UserResponse)
async def upsert_membership(
    user_id: uuid.UUID,
    client_id: uuid.UUID,
    body: MembershipUpsert,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Grant or change a user's role in a client workspace."""
    access = await resolve_workspace(db, current, client_id)
    access.require(ClientRole.ADMIN)
    if body.role == "owner":
        access.require(ClientRole.OWNER)
    user = await _get_user(db, current.organization_id, user_id)

    membership = (
        await db.execute(
            select(ClientMembership).where(
                ClientMembership.client_id == client_id,
                ClientMembership.user_id == user.id,
            )
        )
    ).scalar_one_or_none()
    if membership is None:
        db.add(ClientMembership(client_id=client_id, user_id=user.id, role=body.role))
    else:
        membership.role = body.role
    await db.flush()

    await get_audit_service().log_request_event(
        db, request,
        action="membership_updated",
        organization_id=current.organization_id,
        client_id=client_id,
        user_id=current.id,
        resource_type="user",
        resource_id=str(user.id),
        details={"role": body.role},
    )
    return (await to_user_response(db, [user]))[0]


@router.delete("/{user_id}/clients/{client_id}", status_code=204)
async def remove_membership(
    user_id: uuid.UUID,
    client_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """Remove a user from a client workspace."""
    access = await resolve_workspace(db, current, client_id)
    access.require(ClientRole.ADMIN)

    result = await db.execute(
        delete(ClientMembership).where(
            ClientMembership.client_id == client_id,
            ClientMembership.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Membership not found")

    await get_audit_service().log_request_event(
        db, request,
        action="membership_removed",
        organization_id=current.organization_id,
        client_id=client_id,
        user_id=current.id,
        resource_type="user",
        resource_id=str(user_id),
    )
