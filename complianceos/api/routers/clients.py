"""Client workspace endpoints: CRUD, members, scores, controls."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_current_user, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole, Permission, Role, check_permission
from complianceos.db.models import ClientControl, ClientMembership, Control, Framework, User
from complianceos.db.repositories.client import client_repo
from complianceos.schemas.client import ClientCreate, ClientResponse, ClientUpdate, PolicyMappingCreate
from complianceos.schemas.framework import AdoptFrameworkResponse, ClientControlResponse, ClientControlUpdate
from complianceos.schemas.user import MemberResponse
from complianceos.services import compliance
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])


def _control_out(client_control: ClientControl, code: Optional[str], name: Optional[str]) -> ClientControlResponse:
    out = ClientControlResponse.model_validate(client_control)
    out.control_code = code
    out.control_name = name
    return out


@router.get("", response_model=list[ClientResponse])
async def list_clients(
    status: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Clients visible to the caller. Org admins see all of them."""
    if Role.from_str(user.role) >= Role.ADMIN:
        return await client_repo.list_all(db, user.organization_id, status=status, q=q)
    return await client_repo.list_for_member(db, user.organization_id, user.id, status=status, q=q)


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    body: ClientCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a client; the creator becomes its workspace owner."""
    check_permission(request, Permission.CLIENTS_CREATE)
    client = await client_repo.create(db, body, user.organization_id)
    db.add(ClientMembership(client_id=client.id, user_id=user.id, role="owner"))
    await db.flush()

    await get_audit_service().log_request_event(
        db, request,
        action="client_created",
        organization_id=user.organization_id,
        client_id=client.id,
        user_id=user.id,
        resource_type="client",
        resource_id=str(client.id),
        details={"name": client.name},
    )
    return client


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(access: WorkspaceAccess = Depends(get_workspace)):
    """Get a single client."""
    return access.client


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    body: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a client."""
    client = await client_repo.update(db, access.client_id, access.organization_id, body)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.OWNER)),
):
    """Delete a client and everything in its workspace."""
    client_id, name = access.client_id, access.client.name
    await compliance.delete_client(db, access.client)
    await get_audit_service().log_request_event(
        db, request,
        action="client_deleted",
        organization_id=access.organization_id,
        client_id=client_id,
        user_id=access.user_id,
        resource_type="client",
        resource_id=str(client_id),
        details={"name": name},
    )


@router.get("/{client_id}/members", response_model=list[MemberResponse])
async def list_members(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Workspace members with their roles."""
    rows = await db.execute(
        select(User, ClientMembership.role)
        .join(ClientMembership, ClientMembership.user_id == User.id)
        .where(ClientMembership.client_id == access.client_id, User.deleted_at.is_(None))
        .order_by(User.name)
    )
    return [
        MemberResponse(user_id=u.id, name=u.name, email=u.email, role=role, org_role=u.role)
        for u, role in rows.all()
    ]


# ── Scores & checklists ──────────────────────────────────────────────────


@router.get("/{client_id}/compliance-score")
async def get_compliance_score(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Implemented / applicable controls, with evidence counts."""
    return await compliance.get_compliance_score(db, access.client_id)


@router.get("/{client_id}/policy-coverage")
async def get_policy_coverage(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Controls backed by at least one mapped policy."""
    return await compliance.policy_coverage(db, access.client_id)


@router.post("/{client_id}/policy-mappings", status_code=201)
async def add_policy_mapping(
    body: PolicyMappingCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Map a client control to a client policy."""
    mapping = await compliance.add_policy_mapping(
        db, access.client_id, body.client_control_id, body.client_policy_id
    )
    return {
        "id": str(mapping.id),
        "client_control_id": str(mapping.client_control_id),
        "client_policy_id": str(mapping.client_policy_id),
    }


@router.delete("/{client_id}/policy-mappings", status_code=204)
async def remove_policy_mapping(
    client_control_id: uuid.UUID = Query(...),
    client_policy_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Remove a control to policy mapping."""
    await compliance.remove_policy_mapping(db, access.client_id, client_control_id, client_policy_id)


@router.get("/{client_id}/onboarding-status")
async def get_onboarding_status(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Setup checklist for a new workspace."""
    return await compliance.onboarding_status(db, access.client_id)


@router.get("/{client_id}/dashboard")
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Workspace dashboard figures."""
    return await compliance.dashboard(db, access.client_id)


# ── Frameworks & controls ────────────────────────────────────────────────


@router.post("/{client_id}/frameworks/{framework_id}", response_model=AdoptFrameworkResponse)
async def adopt_framework(
    framework_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Adopt a framework: one client control per framework control."""
    framework = (
        await db.execute(
            select(Framework).where(
                Framework.id == framework_id,
                or_(Framework.organization_id.is_(None), Framework.organization_id == access.organization_id),
            )
        )
    ).scalar_one_or_none()
    if not framework:
        raise HTTPException(status_code=404, detail="Framework not found")

    result = await compliance.adopt_framework(db, access.client_id, framework)
    await get_audit_service().log_request_event(
        db, request,
        action="framework_adopted",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="framework",
        resource_id=str(framework.id),
        details=result,
    )
    return result


@router.get("/{client_id}/controls", response_model=list[ClientControlResponse])
async def list_client_controls(
    framework_id: Optional[uuid.UUID] = Query(default=None),
    status: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Client controls with their control code and name."""
    stmt = (
        select(ClientControl, Control.control_code, Control.name)
        .join(Control, Control.id == ClientControl.control_id)
        .where(ClientControl.client_id == access.client_id)
        .order_by(Control.control_code)
    )
    if framework_id:
        stmt = stmt.where(ClientControl.framework_id == framework_id)
    if status:
        stmt = stmt.where(ClientControl.status == status)
    return [_control_out(cc, code, name) for cc, code, name in (await db.execute(stmt)).all()]


@router.patch("/{client_id}/controls/{client_control_id}", response_model=ClientControlResponse)
async def update_client_control(
    client_control_id: uuid.UUID,
    body: ClientControlUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update status, applicability, ownership or due date of a client control."""
    client_control = await compliance.update_client_control(db, access.client_id, client_control_id, body)
    control = await db.get(Control, client_control.control_id)
    return _control_out(client_control, control.control_code, control.name)
