"""
Policy Service.

Publishing snapshots a policy into an immutable PolicyVersion.
Assignments move pending → viewed → attested; exceptions pending → approved|rejected.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.config import settings
from complianceos.db.models import (
    ClientPolicy,
    ControlPolicyMapping,
    Employee,
    PolicyAssignment,
    PolicyException,
    PolicyVersion,
)
from complianceos.schemas.policy import (
    AssignmentResponse,
    AttestationStats,
    EmployeeCreate,
    EmployeeUpdate,
    ExceptionCreate,
    ExceptionReview,
    PublishRequest,
)
from complianceos.services.exceptions import ConflictError, DomainError, NotFoundError, TransitionError
from complianceos.services.scoring import percentage

logger = structlog.get_logger(__name__)


# ── Policies ─────────────────────────────────────────────────────────────


async def get_policy(db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID) -> ClientPolicy:
    policy = (
        await db.execute(
            select(ClientPolicy).where(ClientPolicy.id == policy_id, ClientPolicy.client_id == client_id)
        )
    ).scalar_one_or_none()
    if policy is None:
        raise NotFoundError("Policy not found")
    return policy


async def publish_policy(
    db: AsyncSession,
    client_id: uuid.UUID,
    policy_id: uuid.UUID,
    data: PublishRequest,
    user_id: Optional[uuid.UUID] = None,
    today: Optional[date] = None,
) -> PolicyVersion:
    policy = await get_policy(db, client_id, policy_id)
    if policy.status == "archived":
        raise TransitionError("Archived policies cannot be published")

    current = policy.version or 0
    snapshot = PolicyVersion(
        client_policy_id=policy.id,
        version=data.version or f"{current + 1}.0",
        content=policy.content,
        status="approved",
        description=data.description,
        published_by=user_id,
    )
    db.add(snapshot)

    policy.status = "approved"
    policy.version = current + 1
    policy.next_review_date = (today or date.today()) + timedelta(days=settings.policy_review_interval_days)
    await db.flush()

    logger.info(
        "policy_published",
        policy_id=str(policy.id),
        client_id=str(client_id),
        version=snapshot.version,
    )
    return snapshot


async def list_versions(db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID) -> list[PolicyVersion]:
    policy = await get_policy(db, client_id, policy_id)
    return list(
        (
            await db.execute(
                select(PolicyVersion)
                .where(PolicyVersion.client_policy_id == policy.id)
                .order_by(PolicyVersion.published_at.desc())
            )
        ).scalars().all()
    )


async def delete_policy(db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID) -> None:
    policy = await get_policy(db, client_id, policy_id)
    for model, column in (
        (PolicyVersion, PolicyVersion.client_policy_id),
        (PolicyAssignment, PolicyAssignment.policy_id),
        (PolicyException, PolicyException.policy_id),
        (ControlPolicyMapping, ControlPolicyMapping.client_policy_id),
    ):
        rows = (await db.execute(select(model).where(column == policy.id))).scalars().all()
        for row in rows:
            await db.delete(row)
    await db.delete(policy)
    await db.flush()


# ── Employees ────────────────────────────────────────────────────────────


async def _email_taken(
    db: AsyncSession, client_id: uuid.UUID, email: str, exclude_id: Optional[uuid.UUID] = None
) -> bool:
    stmt = select(Employee.id).where(
        Employee.client_id == client_id,
        func.lower(Employee.email) == email.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Employee.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def create_employee(db: AsyncSession, client_id: uuid.UUID, data: EmployeeCreate) -> Employee:
    if await _email_taken(db, client_id, data.email):
        raise ConflictError("An employee with this email already exists")
    employee = Employee(client_id=client_id, **data.model_dump())
    db.add(employee)
    await db.flush()
    return employee


async def update_employee(
    db: AsyncSession, client_id: uuid.UUID, employee_id: uuid.UUID, data: EmployeeUpdate
) -> Employee:
    employee = await get_employee(db, client_id, employee_id)
    values = data.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in values and await _email_taken(db, client_id, values["email"], employee.id):
        raise ConflictError("An employee with this email already exists")
    for key, value in values.items():
        setattr(employee, key, value)
    await db.flush()
    return employee


async def get_employee(db: AsyncSession, client_id: uuid.UUID, employee_id: uuid.UUID) -> Employee:
    employee = (
        await db.execute(select(Employee).where(Employee.id == employee_id, Employee.client_id == client_id))
    ).scalar_one_or_none()
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


async def delete_employee(db: AsyncSession, client_id: uuid.UUID, employee_id: uuid.UUID) -> None:
    employee = await get_employee(db, client_id, employee_id)
    for model in (PolicyAssignment, PolicyException):
        rows = (await db.execute(select(model).where(model.employee_id == employee.id))).scalars().all()
        for row in rows:
            await db.delete(row)
    await db.delete(employee)
    await db.flush()


# ── Assignments ──────────────────────────────────────────────────────────


async def assign_policy(
    db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID, employee_ids: list[uuid.UUID]
) -> int:
    """Assign a policy to employees not yet assigned. Returns the number of new assignments."""
    policy = await get_policy(db, client_id, policy_id)
    wanted = set(employee_ids)

    known = set(
        (
            await db.execute(
                select(Employee.id).where(Employee.client_id == client_id, Employee.id.in_(wanted))
            )
        ).scalars().all()
    )
    if known != wanted:
        raise DomainError("One or more employees do not belong to this client")

    already = set(
        (
            await db.execute(
                select(PolicyAssignment.employee_id).where(
                    PolicyAssignment.policy_id == policy.id,
                    PolicyAssignment.employee_id.in_(wanted),
                )
            )
        ).scalars().all()
    )

    new_ids = [eid for eid in employee_ids if eid not in already]
    for employee_id in dict.fromkeys(new_ids):
        db.add(
            PolicyAssignment(
                client_id=client_id,
                policy_id=policy.id,
                employee_id=employee_id,
                status="pending",
            )
        )
    await db.flush()
    count = len(dict.fromkeys(new_ids))
    logger.info("policy_assigned", policy_id=str(policy.id), client_id=str(client_id), count=count)
    return count


def _assignment_out(assignment: PolicyAssignment, employee: Employee, policy_name: Optional[str] = None) -> AssignmentResponse:
    out = AssignmentResponse.model_validate(assignment)
    out.employee_name = f"{employee.first_name} {employee.last_name}"
    out.employee_email = employee.email
    out.policy_name = policy_name
    return out


async def list_assignments(
    db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID
) -> list[AssignmentResponse]:
    policy = await get_policy(db, client_id, policy_id)
    rows = await db.execute(
        select(PolicyAssignment, Employee)
        .join(Employee, Employee.id == PolicyAssignment.employee_id)
        .where(PolicyAssignment.policy_id == policy.id)
        .order_by(Employee.last_name, Employee.first_name)
    )
    return [_assignment_out(a, e, policy.name) for a, e in rows.all()]


async def _get_assignment(db: AsyncSession, client_id: uuid.UUID, assignment_id: uuid.UUID) -> PolicyAssignment:
    assignment = (
        await db.execute(
            select(PolicyAssignment).where(
                PolicyAssignment.id == assignment_id,
                PolicyAssignment.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Assignment not found")
    return assignment


async def mark_viewed(db: AsyncSession, client_id: uuid.UUID, assignment_id: uuid.UUID) -> PolicyAssignment:
    assignment = await _get_assignment(db, client_id, assignment_id)
    if assignment.status == "pending":
        assignment.status = "viewed"
        assignment.viewed_at = datetime.utcnow()
        await db.flush()
    return assignment


async def attest(db: AsyncSession, client_id: uuid.UUID, assignment_id: uuid.UUID) -> PolicyAssignment:
    assignment = await _get_assignment(db, client_id, assignment_id)
    if assignment.status == "attested":
        return assignment
    now = datetime.utcnow()
    if assignment.viewed_at is None:
        assignment.viewed_at = now
    assignment.status = "attested"
    assignment.attested_at = now
    await db.flush()
    logger.info("policy_attested", assignment_id=str(assignment.id), client_id=str(client_id))
    return assignment


async def my_assignments(db: AsyncSession, client_id: uuid.UUID, email: str) -> list[AssignmentResponse]:
    """Assignments of the employee record whose email matches the caller."""
    rows = await db.execute(
        select(PolicyAssignment, Employee, ClientPolicy.name)
        .join(Employee, Employee.id == PolicyAssignment.employee_id)
        .join(ClientPolicy, ClientPolicy.id == PolicyAssignment.policy_id)
        .where(
            PolicyAssignment.client_id == client_id,
            func.lower(Employee.email) == email.lower(),
        )
        .order_by(PolicyAssignment.assigned_at.desc())
    )
    return [_assignment_out(a, e, name) for a, e, name in rows.all()]


async def attestation_stats(
    db: AsyncSession, client_id: uuid.UUID, policy_id: Optional[uuid.UUID] = None
) -> AttestationStats:
    """Assignment counts for one policy, or for the whole client when policy_id is None."""
    stmt = (
        select(PolicyAssignment.status, func.count())
        .where(PolicyAssignment.client_id == client_id)
        .group_by(PolicyAssignment.status)
    )
    if policy_id is not None:
        await get_policy(db, client_id, policy_id)
        stmt = stmt.where(PolicyAssignment.policy_id == policy_id)
    counts = dict((await db.execute(stmt)).all())

    assigned = sum(counts.values())
    attested = counts.get("attested", 0)
    return AttestationStats(
        assigned=assigned,
        viewed=counts.get("viewed", 0) + attested,
        attested=attested,
        attestation_rate=percentage(attested, assigned),
    )


# ── Exceptions ───────────────────────────────────────────────────────────


async def create_exception(
    db: AsyncSession, client_id: uuid.UUID, policy_id: uuid.UUID, data: ExceptionCreate
) -> PolicyException:
    policy = await get_policy(db, client_id, policy_id)
    employee = await get_employee(db, client_id, data.employee_id)
    exception = PolicyException(
        client_id=client_id,
        policy_id=policy.id,
        employee_id=employee.id,
        reason=data.reason,
        expiration_date=data.expiration_date,
        status="pending",
    )
    db.add(exception)
    await db.flush()
    return exception


async def review_exception(
    db: AsyncSession,
    client_id: uuid.UUID,
    exception_id: uuid.UUID,
    data: ExceptionReview,
    reviewer_id: uuid.UUID,
) -> PolicyException:
    exception = (
        await db.execute(
            select(PolicyException).where(
                PolicyException.id == exception_id,
                PolicyException.client_id == client_id,
            )
        )
    ).scalar_one_or_none()
    if exception is None:
        raise NotFoundError("Policy exception not found")
    if exception.status != "pending":
        raise TransitionError("Only pending exceptions can be reviewed")

    if data.decision == "approved":
        exception.status = "approved"
        exception.approved_by = reviewer_id
        exception.approved_at = datetime.utcnow()
    else:
        if not (data.rejection_reason or "").strip():
            raise DomainError("A rejection reason is required")
        exception.status = "rejected"
        exception.rejection_reason = data.rejection_reason
    await db.flush()
    logger.info("policy_exception_reviewed", exception_id=str(exception.id), decision=data.decision)
    return exception
