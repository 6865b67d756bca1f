"""Framework catalog endpoints: built-ins plus organization frameworks."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import get_current_user, get_db
from complianceos.auth.rbac import Permission, check_permission
from complianceos.db.models import Control, Framework, User
from complianceos.schemas.framework import ControlCreate, ControlResponse, FrameworkCreate, FrameworkResponse

router = APIRouter(prefix="/api/v1/frameworks", tags=["frameworks"])


def _framework_out(framework: Framework) -> FrameworkResponse:
    out = FrameworkResponse.model_validate(framework)
    out.built_in = framework.organization_id is None
    return out


async def _visible_framework(db: AsyncSession, framework_id: uuid.UUID, organization_id: uuid.UUID) -> Framework:
    framework = (
        await db.execute(
            select(Framework).where(
                Framework.id == framework_id,
                or_(Framework.organization_id.is_(None), Framework.organization_id == organization_id),
            )
        )
    ).scalar_one_or_none()
    if not framework:
        raise HTTPException(status_code=404, detail="Framework not found")
    return framework


@router.get("", response_model=list[FrameworkResponse])
async def list_frameworks(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Built-in frameworks plus the organization's custom ones."""
    rows = await db.execute(
        select(Framework)
        .where(or_(Framework.organization_id.is_(None), Framework.organization_id == user.organization_id))
        .order_by(Framework.name)
    )
    return [_framework_out(f) for f in rows.scalars().all()]


@router.post("", response_model=FrameworkResponse, status_code=201)
async def create_framework(
    body: FrameworkCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a custom framework for the organization."""
    check_permission(request, Permission.FRAMEWORKS_MANAGE)
    taken = await db.scalar(
        select(func.count()).select_from(Framework).where(
            Framework.code == body.code,
            or_(Framework.organization_id.is_(None), Framework.organization_id == user.organization_id),
        )
    )
    if taken:
        raise HTTPException(status_code=409, detail="Framework code already exists")

    framework = Framework(organization_id=user.organization_id, **body.model_dump())
    db.add(framework)
    await db.flush()
    return _framework_out(framework)


@router.get("/{framework_id}/controls", response_model=list[ControlResponse])
async def list_controls(
    framework_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Controls of a framework."""
    await _visible_framework(db, framework_id, user.organization_id)
    rows = await db.execute(
        select(Control).where(Control.framework_id == framework_id).order_by(Control.control_code)
    )
    return rows.scalars().all()


@router.post("/{framework_id}/controls", response_model=ControlResponse, status_code=201)
async def create_control(
    framework_id: uuid.UUID,
    body: ControlCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add a control to a custom framework."""
    check_permission(request, Permission.FRAMEWORKS_MANAGE)
    framework = await _visible_framework(db, framework_id, user.organization_id)
    if framework.organization_id is None:
        raise HTTPException(status_code=400, detail="Built-in frameworks cannot be modified")

    exists = await db.scalar(
        select(func.count()).select_from(Control).where(
            Control.framework_id == framework_id,
            Control.control_code == body.control_code,
        )
    )
    if exists:
        raise HTTPException(status_code=409, detail="Control code already exists in this framework")

    control = Control(framework_id=framework_id, **body.model_dump())
    db.add(control)
    await db.flush()
    return control
