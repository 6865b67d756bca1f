"""DPA template endpoints (organization scope)."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import get_current_user, get_db
from complianceos.auth.rbac import Permission, check_permission
from complianceos.db.models import User
from complianceos.db.repositories.vendor import dpa_template_repo
from complianceos.schemas.vendor import DpaTemplateCreate, DpaTemplateResponse, DpaTemplateUpdate
from complianceos.services import vendor_service

router = APIRouter(prefix="/api/v1/dpa-templates", tags=["dpa-templates"])


@router.get("", response_model=list[DpaTemplateResponse])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """DPA templates of the organization."""
    return await dpa_template_repo.list(
        db, user.organization_id, limit=200, order_by="name", descending=False
    )


@router.post("", response_model=DpaTemplateResponse, status_code=201)
async def create_template(
    body: DpaTemplateCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a DPA template."""
    check_permission(request, Permission.TEMPLATES_MANAGE)
    return await vendor_service.create_template(db, user.organization_id, body)


@router.get("/{template_id}", response_model=DpaTemplateResponse)
async def get_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Get a single DPA template."""
    return await vendor_service.get_template(db, user.organization_id, template_id)


@router.patch("/{template_id}", response_model=DpaTemplateResponse)
async def update_template(
    template_id: uuid.UUID,
    body: DpaTemplateUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Update a template; content changes bump its version."""
    check_permission(request, Permission.TEMPLATES_MANAGE)
    return await vendor_service.update_template(db, user.organization_id, template_id, body)


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete a DPA template."""
    check_permission(request, Permission.TEMPLATES_MANAGE)
    deleted = await dpa_template_repo.delete(db, template_id, user.organization_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="DPA template not found")
