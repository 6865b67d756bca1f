"""
Notification endpoints.

Settings, digest sends, delivery log and test messages for one workspace.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.api.deps import WorkspaceAccess, get_db, get_workspace, require_client_role
from complianceos.auth.rbac import ClientRole, Permission, has_permission
from complianceos.schemas.notification import (
    DigestSendResult,
    NotificationLogResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
    TestNotificationResult,
)
from complianceos.services import digest, notification_service

router = APIRouter(prefix="/api/v1/clients/{client_id}/notifications", tags=["notifications"])


async def require_digest_sender(access: WorkspaceAccess = Depends(get_workspace)) -> WorkspaceAccess:
    """Workspace admins, or organization roles holding digests:send."""
    if access.role < ClientRole.ADMIN and not has_permission(access.org_role, Permission.DIGESTS_SEND):
        raise HTTPException(status_code=403, detail="Sending digests requires workspace admin access")
    return access


@router.get("/settings", response_model=NotificationSettingsResponse)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Notification settings, created with defaults on first read."""
    return await notification_service.get_settings(db, access.client_id)


@router.put("/settings", response_model=NotificationSettingsResponse)
async def update_settings(
    body: NotificationSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Merge the given fields into the settings."""
    return await notification_service.update_settings(db, access.client_id, body)


@router.post("/send-overdue", response_model=DigestSendResult)
async def send_overdue(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_digest_sender),
):
    """Send an overdue alert now."""
    return await digest.send_digest(db, access.client, "overdue")


@router.post("/send-upcoming", response_model=DigestSendResult)
async def send_upcoming(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_digest_sender),
):
    """Send an upcoming-deadline reminder now."""
    return await digest.send_digest(db, access.client, "upcoming")


@router.post("/send-daily", response_model=DigestSendResult)
async def send_daily(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_digest_sender),
):
    """Send the daily digest now."""
    return await digest.send_digest(db, access.client, "daily")


@router.post("/send-weekly", response_model=DigestSendResult)
async def send_weekly(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_digest_sender),
):
    """Send the weekly digest now (30 day upcoming window)."""
    return await digest.send_digest(db, access.client, "weekly")


@router.get("/logs", response_model=list[NotificationLogResponse])
async def list_logs(
    type: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(get_workspace),
):
    """Newest delivery log entries."""
    return await notification_service.list_logs(db, access.client_id, limit=limit, type=type)


@router.post("/test", response_model=TestNotificationResult)
async def send_test(
    db: AsyncSession = Depends(get_db),
    access: WorkspaceAccess = Depends(require_client_role(ClientRole.ADMIN)),
):
    """Send a test message to the caller's email and the configured webhook."""
    results = await notification_service.send_test(db, access.client, access.user.email)
    return TestNotificationResult(
        results={channel: result.model_dump(mode="json") for channel, result in results.items()}
    )
