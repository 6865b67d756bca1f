"""Policy endpoints: policies, versions, employees, assignments and exceptions."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.models import Employee, PolicyAssignment, PolicyException
from complianceos.db.repositories.policy import employee_repo, policy_repo
from complianceos.schemas.policy import (
    AssignmentResponse,
    AssignRequest,
    AttestationStats,
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
    ExceptionCreate,
    ExceptionResponse,
    ExceptionReview,
    PolicyCreate,
    PolicyResponse,
    PolicyUpdate,
    PolicyVersionResponse,
    PublishRequest,
)
from complianceos.services import policy_service
from complianceos.services.security_audit import get_audit_service

router = APIRouter(prefix="/api/v1/clients/{client_id}", tags=["policies"])


async def _check_own_assignment(db: AsyncSession, access: WorkspaceAccess, assignment_id: uuid.UUID) -> None:
    """Viewers may only act on assignments of their own employee record."""
    if access.role >= ClientRole.EDITOR:
        return
    owner_email = await db.scalar(
        select(Employee.email)
        .join(PolicyAssignment, PolicyAssignment.employee_id == Employee.id)
        .where(PolicyAssignment.id == assignment_id, PolicyAssignment.client_id == access.client_id)
    )
    if owner_email is None:
        raise HTTPException(status_code=404, detail="Assignment not found")
    if owner_email.lower() != access.user.email.lower():
        raise HTTPException(status_code=403, detail="You can only attest your own assignments")


# ── Policies ─────────────────────────────────────────────────────────────


@router.get("/policies", response_model=list[PolicyResponse])
async def list_policies(
    status: Optional[str] = Query(default=None),
    module: Optional[str] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List policies (paginated)."""
    return await policy_repo.list(
        db, access.client_id, offset=offset, limit=limit,
        order_by="name", descending=False, status=status, module=module,
    )


@router.post("/policies", response_model=PolicyResponse, status_code=201)
async def create_policy(
    body: PolicyCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a policy (version 0)."""
    return await policy_repo.create(db, body, access.client_id, version=0)


@router.get("/policies/stats", response_model=AttestationStats)
async def client_attestation_stats(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Attestation totals across every policy of the client."""
    return await policy_service.attestation_stats(db, access.client_id)


@router.get("/policies/exceptions", response_model=list[ExceptionResponse])
async def list_exceptions(
    status: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Policy exceptions, newest first."""
    stmt = select(PolicyException).where(PolicyException.client_id == access.client_id)
    if status:
        stmt = stmt.where(PolicyException.status == status)
    return (await db.execute(stmt.order_by(PolicyException.created_at.desc()))).scalars().all()


@router.post("/policies/exceptions/{exception_id}/review", response_model=ExceptionResponse)
async def review_exception(
    exception_id: uuid.UUID,
    body: ExceptionReview,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Approve or reject a pending exception."""
    exception = await policy_service.review_exception(db, access.client_id, exception_id, body, access.user_id)
    await get_audit_service().log_request_event(
        db, request,
        action="policy_exception_reviewed",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="policy_exception",
        resource_id=str(exception.id),
        details={"decision": body.decision},
    )
    return exception


@router.post("/policies/assignments/{assignment_id}/view", response_model=AssignmentResponse)
async def view_assignment(
    assignment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Record that the employee opened the policy."""
    await _check_own_assignment(db, access, assignment_id)
    return await policy_service.mark_viewed(db, access.client_id, assignment_id)


@router.post("/policies/assignments/{assignment_id}/attest", response_model=AssignmentResponse)
async def attest_assignment(
    assignment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Attest a policy assignment."""
    await _check_own_assignment(db, access, assignment_id)
    return await policy_service.attest(db, access.client_id, assignment_id)


@router.get("/policies/{policy_id}", response_model=PolicyResponse)
async def get_policy(
    policy_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Get a single policy."""
    return await policy_service.get_policy(db, access.client_id, policy_id)


@router.patch("/policies/{policy_id}", response_model=PolicyResponse)
async def update_policy(
    policy_id: uuid.UUID,
    body: PolicyUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a policy draft."""
    policy = await policy_repo.update(db, policy_id, access.client_id, body)
    if not policy:
        raise HTTPException(status_code=404, detail="Policy not found")
    return policy


@router.delete("/policies/{policy_id}", status_code=204)
async def delete_policy(
    policy_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a policy with its versions, assignments and mappings."""
    await policy_service.delete_policy(db, access.client_id, policy_id)
    await get_audit_service().log_request_event(
        db, request,
        action="policy_deleted",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="policy",
        resource_id=str(policy_id),
    )


@router.post("/policies/{policy_id}/publish", response_model=PolicyVersionResponse, status_code=201)
async def publish_policy(
    policy_id: uuid.UUID,
    body: PublishRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Snapshot the policy into a new version and approve it."""
    version = await policy_service.publish_policy(db, access.client_id, policy_id, body, access.user_id)
    await get_audit_service().log_request_event(
        db, request,
        action="policy_published",
        organization_id=access.organization_id,
        client_id=access.client_id,
        user_id=access.user_id,
        resource_type="policy",
        resource_id=str(policy_id),
        details={"version": version.version},
    )
    return version


@router.get("/policies/{policy_id}/versions", response_model=list[PolicyVersionResponse])
async def list_versions(
    policy_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Published versions, newest first."""
    return await policy_service.list_versions(db, access.client_id, policy_id)


@router.get("/policies/{policy_id}/stats", response_model=AttestationStats)
async def policy_attestation_stats(
    policy_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Assignment and attestation counts for one policy."""
    return await policy_service.attestation_stats(db, access.client_id, policy_id)


# ── Assignments & exceptions ─────────────────────────────────────────────


@router.post("/policies/{policy_id}/assign")
async def assign_policy(
    policy_id: uuid.UUID,
    body: AssignRequest,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Assign a policy to employees; returns the number of new assignments."""
    count = await policy_service.assign_policy(db, access.client_id, policy_id, body.employee_ids)
    return {"count": count}


@router.get("/policies/{policy_id}/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    policy_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Assignments of a policy with employee name and email."""
    return await policy_service.list_assignments(db, access.client_id, policy_id)


@router.post("/policies/{policy_id}/exceptions", response_model=ExceptionResponse, status_code=201)
async def create_exception(
    policy_id: uuid.UUID,
    body: ExceptionCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Request an exception from a policy for one employee."""
    return await policy_service.create_exception(db, access.client_id, policy_id, body)


@router.get("/me/policies", response_model=list[AssignmentResponse])
async def my_policies(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Assignments of the employee record matching the caller's email."""
    return await policy_service.my_assignments(db, access.client_id, access.user.email)


# ── Employees ────────────────────────────────────────────────────────────


@router.get("/employees", response_model=list[EmployeeResponse])
async def list_employees(
    department: Optional[str] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """List employees (paginated)."""
    return await employee_repo.list(
        db, access.client_id, offset=offset, limit=limit,
        order_by="last_name", descending=False, department=department,
    )


@router.get("/employees/count")
async def count_employees(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Number of employees in the workspace."""
    total = await db.scalar(
        select(func.count()).select_from(Employee).where(Employee.client_id == access.client_id)
    )
    return {"total": total or 0}


@router.post("/employees", response_model=EmployeeResponse, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create an employee. Email is unique per client."""
    return await policy_service.create_employee(db, access.client_id, body)


@router.get("/employees/{employee_id}", response_model=EmployeeResponse)
async def get_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Get a single employee."""
    return await policy_service.get_employee(db, access.client_id, employee_id)


@router.patch("/employees/{employee_id}", response_model=EmployeeResponse)
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update an employee."""
    return await policy_service.update_employee(db, access.client_id, employee_id, body)


@router.delete("/employees/{employee_id}", status_code=204)
async def delete_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Delete an employee and their assignments."""
    await policy_service.delete_employee(db, access.client_id, employee_id)
