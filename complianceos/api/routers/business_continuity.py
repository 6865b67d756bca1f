"""Business continuity endpoints: program, processes, BIAs and plans."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole
from complianceos.db.repositories.bcp import bia_repo, plan_repo, process_repo
from complianceos.schemas.bcp import (
    BiaCreate,
    BiaDetail,
    BiaResponse,
    BiaStatusUpdate,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    ProcessCreate,
    ProcessResponse,
    ProcessUpdate,
    ProgramResponse,
    ProgramUpsert,
    RecoveryObjectiveCreate,
    RecoveryObjectiveResponse,
)
from complianceos.services import bcp_service

router = APIRouter(prefix="/api/v1/clients/{client_id}/bcp", tags=["business-continuity"])


# ── Program ──────────────────────────────────────────────────────────────


@router.get("/program", response_model=ProgramResponse)
async def get_program(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """The client's business continuity program."""
    return await bcp_service.get_program(db, access.client_id)


@router.put("/program", response_model=ProgramResponse)
async def upsert_program(
    body: ProgramUpsert,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create or update the program."""
    return await bcp_service.upsert_program(db, access.client_id, body)


@router.get("/dashboard")
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Readiness score and raw counts."""
    return await bcp_service.dashboard(db, access.client_id)


# ── Processes ────────────────────────────────────────────────────────────


@router.get("/processes", response_model=list[ProcessResponse])
async def list_processes(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Business processes."""
    return await process_repo.list(db, access.client_id, limit=200, order_by="name", descending=False)


@router.post("/processes", response_model=ProcessResponse, status_code=201)
async def create_process(
    body: ProcessCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a business process."""
    bcp_service.validate_objectives(body.rto, body.rpo, body.mtpd)
    return await process_repo.create(db, body, access.client_id)


@router.patch("/processes/{process_id}", response_model=ProcessResponse)
async def update_process(
    process_id: uuid.UUID,
    body: ProcessUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a business process."""
    current = await bcp_service.get_process(db, access.client_id, process_id)
    bcp_service.validate_objectives(
        body.rto or current.rto, body.rpo or current.rpo, body.mtpd or current.mtpd
    )
    return await process_repo.update(db, process_id, access.client_id, body)


@router.delete("/processes/{process_id}", status_code=204)
async def delete_process(
    process_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a process with its BIAs."""
    await bcp_service.delete_process(db, access.client_id, process_id)


# ── BIAs ─────────────────────────────────────────────────────────────────


@router.get("/bias", response_model=list[BiaResponse])
async def list_bias(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Business impact analyses, newest first."""
    return await bia_repo.list(db, access.client_id, limit=200)


@router.post("/bias", response_model=BiaResponse, status_code=201)
async def create_bia(
    body: BiaCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Start a BIA for a process (status draft)."""
    return await bcp_service.create_bia(db, access.client_id, body.process_id, body.title, body.methodology)


@router.get("/bias/{bia_id}", response_model=BiaDetail)
async def get_bia(
    bia_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """A BIA with its recovery objectives."""
    bia = await bcp_service.get_bia(db, access.client_id, bia_id)
    objectives = await bcp_service.list_objectives(db, bia.id)
    return BiaDetail(
        **BiaResponse.model_validate(bia).model_dump(),
        recovery_objectives=[RecoveryObjectiveResponse.model_validate(o) for o in objectives],
    )


@router.patch("/bias/{bia_id}/status", response_model=BiaResponse)
async def set_bia_status(
    bia_id: uuid.UUID,
    body: BiaStatusUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Move a BIA through draft, in_progress, completed and approved."""
    if body.status == "approved":
        access.require(ClientRole.ADMIN)
    return await bcp_service.set_bia_status(db, access.client_id, bia_id, body.status, access.user_id)


@router.post("/bias/{bia_id}/recovery-objectives", response_model=RecoveryObjectiveResponse, status_code=201)
async def add_recovery_objective(
    bia_id: uuid.UUID,
    body: RecoveryObjectiveCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Record RTO, RPO and MTPD for an activity."""
    return await bcp_service.add_recovery_objective(db, access.client_id, bia_id, body)


# ── Plans ────────────────────────────────────────────────────────────────


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Continuity plans."""
    return await plan_repo.list(db, access.client_id, limit=200, order_by="title", descending=False)


@router.post("/plans", response_model=PlanResponse, status_code=201)
async def create_plan(
    body: PlanCreate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Create a continuity plan."""
    return await plan_repo.create(db, body, access.client_id)


@router.patch("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: uuid.UUID,
    body: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.EDITOR)),
):
    """Update a continuity plan."""
    plan = await plan_repo.update(db, plan_id, access.client_id, body)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


@router.delete("/plans/{plan_id}", status_code=204)
async def delete_plan(
    plan_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Delete a continuity plan."""
    deleted = await plan_repo.delete(db, plan_id, access.client_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Plan not found")
