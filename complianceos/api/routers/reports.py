"""Compliance report endpoints (JSON and CSV)."""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace
from complianceos.services import compliance, reports

router = APIRouter(prefix="/api/v1/clients/{client_id}/reports", tags=["reports"])


@router.get("/compliance")
async def compliance_report(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Aggregated compliance posture of the workspace."""
    return await reports.compliance_report(db, access.client)


@router.get("/compliance.csv")
async def compliance_csv(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Per-framework breakdown as CSV."""
    rows = await compliance.framework_breakdown(db, access.client_id)
    filename = f"compliance-{access.client_id}.csv"
    return Response(
        content=reports.frameworks_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
