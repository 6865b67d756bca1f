"""
Vendor Service.

- Vendor stats for dashboards and reports
- Onboarding workflow: Onboarding → data mapping → submit (DPA drafted,
  pending_approval) → decision (approved → Active, rejected → Inactive)
- DPA templates (organization scope) and template rendering
- Vendor DPA lifecycle: Draft → Review → Signed → Archived
"""

import re
import uuid
from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Client, DpaTemplate, Vendor, VendorDpa
from complianceos.schemas.vendor import (
    DataMapping,
    DpaTemplateCreate,
    DpaTemplateUpdate,
    OnboardingStart,
    VendorDpaCreate,
    VendorStats,
)
from complianceos.services.exceptions import DomainError, NotFoundError, TransitionError

logger = structlog.get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([a-z_]+)\s*\}\}")

# current status → statuses it may move to
DPA_TRANSITIONS: dict[str, frozenset[str]] = {
    "Draft": frozenset({"Review", "Signed", "Archived"}),
    "Review": frozenset({"Draft", "Signed", "Archived"}),
    "Signed": frozenset({"Archived"}),
    "Archived": frozenset({"Draft"}),
}


# ── Rendering ────────────────────────────────────────────────────────────


def render_dpa(
    template: str,
    *,
    vendor_name: str,
    vendor_website: Optional[str],
    client_name: str,
    data_categories: Optional[list[str]],
    today: Optional[date] = None,
) -> str:
    """Fill `{{placeholder}}` slots. Unknown placeholders are left intact."""
    values = {
        "vendor_name": vendor_name,
        "vendor_website": vendor_website or "",
        "client_name": client_name,
        "data_categories": ", ".join(data_categories) if data_categories else "Not specified",
        "date": (today or date.today()).isoformat(),
    }

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def dpa_name(vendor_name: str, today: Optional[date] = None) -> str:
    return f"{vendor_name} DPA - {(today or date.today()).isoformat()}"


# ── Vendors ──────────────────────────────────────────────────────────────


async def get_vendor(db: AsyncSession, client_id: uuid.UUID, vendor_id: uuid.UUID) -> Vendor:
    vendor = (
        await db.execute(select(Vendor).where(Vendor.id == vendor_id, Vendor.client_id == client_id))
    ).scalar_one_or_none()
    if vendor is None:
        raise NotFoundError("Vendor not found")
    return vendor


async def vendor_stats(db: AsyncSession, client_id: uuid.UUID) -> VendorStats:
    row = (
        await db.execute(
            select(
                func.count(),
                func.sum(case((Vendor.criticality == "High", 1), else_=0)),
                func.sum(case((Vendor.criticality == "Medium", 1), else_=0)),
                func.sum(case((Vendor.criticality == "Low", 1), else_=0)),
                func.sum(case((Vendor.review_status == "needs_review", 1), else_=0)),
                func.sum(case((Vendor.is_subprocessor.is_(True), 1), else_=0)),
            ).where(Vendor.client_id == client_id)
        )
    ).one()
    total, high, medium, low, needs_review, subprocessors = (value or 0 for value in row)
    return VendorStats(
        total=total,
        high=high,
        medium=medium,
        low=low,
        needs_review=needs_review,
        subprocessors=subprocessors,
    )


async def start_onboarding(db: AsyncSession, client_id: uuid.UUID, data: OnboardingStart) -> Vendor:
    vendor = Vendor(
        client_id=client_id,
        status="Onboarding",
        review_status="needs_review",
        **data.model_dump(),
    )
    db.add(vendor)
    await db.flush()
    logger.info("vendor_onboarding_started", vendor_id=str(vendor.id), client_id=str(client_id))
    return vendor


async def save_data_mapping(
    db: AsyncSession, client_id: uuid.UUID, vendor_id: uuid.UUID, data: DataMapping
) -> Vendor:
    vendor = await get_vendor(db, client_id, vendor_id)
    if vendor.status != "Onboarding":
        raise TransitionError("Vendor is not being onboarded")
    vendor.data_categories = list(data.data_categories)
    vendor.data_access = data.data_access
    vendor.is_subprocessor = data.is_subprocessor
    await db.flush()
    return vendor


async def submit_onboarding(
    db: AsyncSession,
    client: Client,
    vendor_id: uuid.UUID,
    template_id: Optional[uuid.UUID] = None,
    today: Optional[date] = None,
) -> tuple[Vendor, VendorDpa]:
    """Draft the vendor's DPA from a template and queue the vendor for approval."""
    vendor = await get_vendor(db, client.id, vendor_id)
    if vendor.status != "Onboarding":
        raise TransitionError("Vendor must be in Onboarding to submit")
    if vendor.review_status == "pending_approval":
        raise TransitionError("Vendor is already awaiting approval")

    template = await _resolve_template(db, client.organization_id, template_id)
    content = ""
    if template is not None:
        content = render_dpa(
            template.content,
            vendor_name=vendor.name,
            vendor_website=vendor.website,
            client_name=client.name,
            data_categories=vendor.data_categories,
            today=today,
        )

    dpa = VendorDpa(
        client_id=client.id,
        vendor_id=vendor.id,
        template_id=template.id if template else None,
        name=dpa_name(vendor.name, today),
        content=content,
        status="Draft",
        version=1,
    )
    db.add(dpa)
    vendor.review_status = "pending_approval"
    await db.flush()
    logger.info("vendor_onboarding_submitted", vendor_id=str(vendor.id), dpa_id=str(dpa.id))
    return vendor, dpa


async def decide_onboarding(
    db: AsyncSession, client_id: uuid.UUID, vendor_id: uuid.UUID, decision: str
) -> Vendor:
    vendor = await get_vendor(db, client_id, vendor_id)
    if vendor.review_status != "pending_approval":
        raise TransitionError("Vendor is not awaiting approval")
    if decision == "approved":
        vendor.status = "Active"
        vendor.review_status = "approved"
    else:
        vendor.status = "Inactive"
        vendor.review_status = "rejected"
    await db.flush()
    logger.info("vendor_onboarding_decided", vendor_id=str(vendor.id), decision=decision)
    return vendor


async def delete_vendor(db: AsyncSession, client_id: uuid.UUID, vendor_id: uuid.UUID) -> None:
    vendor = await get_vendor(db, client_id, vendor_id)
    dpas = (await db.execute(select(VendorDpa).where(VendorDpa.vendor_id == vendor.id))).scalars().all()
    for dpa in dpas:
        await db.delete(dpa)
    await db.delete(vendor)
    await db.flush()


# ── DPA templates ────────────────────────────────────────────────────────


async def _resolve_template(
    db: AsyncSession, organization_id: uuid.UUID, template_id: Optional[uuid.UUID]
) -> Optional[DpaTemplate]:
    """Explicit template, else the organization default, else None."""
    if template_id is not None:
        return await get_template(db, organization_id, template_id)
    return (
        await db.execute(
            select(DpaTemplate)
            .where(DpaTemplate.organization_id == organization_id, DpaTemplate.is_default.is_(True))
            .limit(1)
        )
    ).scalar_one_or_none()


async def get_template(db: AsyncSession, organization_id: uuid.UUID, template_id: uuid.UUID) -> DpaTemplate:
    template = (
        await db.execute(
            select(DpaTemplate).where(
                DpaTemplate.id == template_id,
                DpaTemplate.organization_id == organization_id,
            )
        )
    ).scalar_one_or_none()
    if template is None:
        raise NotFoundError("DPA template not found")
    return template


async def _clear_defaults(db: AsyncSession, organization_id: uuid.UUID, keep_id: Optional[uuid.UUID]) -> None:
    stmt = update(DpaTemplate).where(
        DpaTemplate.organization_id == organization_id,
        DpaTemplate.is_default.is_(True),
    )
    if keep_id is not None:
        stmt = stmt.where(DpaTemplate.id != keep_id)
    await db.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


async def create_template(db: AsyncSession, organization_id: uuid.UUID, data: DpaTemplateCreate) -> DpaTemplate:
    if data.is_default:
        await _clear_defaults(db, organization_id, None)
    template = DpaTemplate(organization_id=organization_id, version=1, **data.model_dump())
    db.add(template)
    await db.flush()
    return template


async def update_template(
    db: AsyncSession, organization_id: uuid.UUID, template_id: uuid.UUID, data: DpaTemplateUpdate
) -> DpaTemplate:
    template = await get_template(db, organization_id, template_id)
    values = data.model_dump(exclude_unset=True, exclude_none=True)

    if "content" in values and values["content"] != template.content:
        template.version = (template.version or 1) + 1
    if values.get("is_default"):
        await _clear_defaults(db, organization_id, template.id)

    for key, value in values.items():
        setattr(template, key, value)
    await db.flush()
    return template


# ── Vendor DPAs ──────────────────────────────────────────────────────────


async def create_vendor_dpa(
    db: AsyncSession, client: Client, vendor_id: uuid.UUID, data: VendorDpaCreate, today: Optional[date] = None
) -> VendorDpa:
    vendor = await get_vendor(db, client.id, vendor_id)

    if data.template_id is not None:
        template = await get_template(db, client.organization_id, data.template_id)
        content = render_dpa(
            template.content,
            vendor_name=vendor.name,
            vendor_website=vendor.website,
            client_name=client.name,
            data_categories=vendor.data_categories,
            today=today,
        )
    elif data.content:
        template = None
        content = data.content
    else:
        raise DomainError("Provide a template_id or custom content")

    dpa = VendorDpa(
        client_id=client.id,
        vendor_id=vendor.id,
        template_id=template.id if template else None,
        name=data.name or dpa_name(vendor.name, today),
        content=content,
        status="Draft",
        version=1,
    )
    db.add(dpa)
    await db.flush()
    return dpa


async def get_vendor_dpa(db: AsyncSession, client_id: uuid.UUID, dpa_id: uuid.UUID) -> VendorDpa:
    dpa = (
        await db.execute(select(VendorDpa).where(VendorDpa.id == dpa_id, VendorDpa.client_id == client_id))
    ).scalar_one_or_none()
    if dpa is None:
        raise NotFoundError("DPA not found")
    return dpa


async def set_dpa_status(db: AsyncSession, client_id: uuid.UUID, dpa_id: uuid.UUID, status: str) -> VendorDpa:
    dpa = await get_vendor_dpa(db, client_id, dpa_id)
    if status == dpa.status:
        return dpa
    if status not in DPA_TRANSITIONS.get(dpa.status, frozenset()):
        raise TransitionError(f"Cannot move DPA from {dpa.status} to {status}")

    dpa.status = status
    if status == "Signed":
        dpa.signed_at = datetime.utcnow()
    elif status == "Draft":
        dpa.version = (dpa.version or 1) + 1
    await db.flush()
    logger.info("vendor_dpa_status_changed", dpa_id=str(dpa.id), status=status)
    return dpa
