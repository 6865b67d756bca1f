"""
Notification settings and delivery log.

Every delivery attempt, whatever its outcome, is recorded in the
notification log with status sent, failed or skipped.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Client, NotificationLog, NotificationSettings
from complianceos.notifications.channels import get_channel_router
from complianceos.notifications.schemas import (
    DeliveryResult,
    NotificationChannel,
    NotificationMessage,
    NotificationType,
)
from complianceos.schemas.notification import NotificationSettingsUpdate
from complianceos.services.exceptions import DomainError
from complianceos.services.input_sanitizer import validate_webhook_url

logger = structlog.get_logger(__name__)


async def get_settings(db: AsyncSession, client_id: uuid.UUID) -> NotificationSettings:
    """The client's settings row, created with defaults on first access."""
    prefs = (
        await db.execute(select(NotificationSettings).where(NotificationSettings.client_id == client_id))
    ).scalar_one_or_none()
    if prefs is None:
        prefs = NotificationSettings(
            client_id=client_id,
            email_enabled=True,
            overdue_enabled=True,
            upcoming_review_days=7,
            daily_digest_enabled=False,
            weekly_digest_enabled=True,
            notify_control_reviews=True,
            notify_policy_renewals=True,
            notify_evidence_expiration=True,
            notify_risk_reviews=True,
            webhook_url="",
        )
        db.add(prefs)
        await db.flush()
    return prefs


async def update_settings(
    db: AsyncSession, client_id: uuid.UUID, data: NotificationSettingsUpdate
) -> NotificationSettings:
    prefs = await get_settings(db, client_id)
    values = data.model_dump(exclude_unset=True, exclude_none=True)

    webhook_url = values.get("webhook_url")
    if webhook_url:
        is_valid, reason = validate_webhook_url(webhook_url)
        if not is_valid:
            raise DomainError(f"Invalid webhook URL: {reason}")

    for key, value in values.items():
        setattr(prefs, key, value)
    await db.flush()
    return prefs


async def log_notification(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    type: str,
    status: str,
    channel: str = "email",
    client_id: Optional[uuid.UUID] = None,
    user_id: Optional[uuid.UUID] = None,
    title: Optional[str] = None,
    message: Optional[str] = None,
    metadata: Optional[dict] = None,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> NotificationLog:
    entry = NotificationLog(
        organization_id=organization_id,
        client_id=client_id,
        user_id=user_id,
        type=type,
        channel=channel,
        title=title,
        message=message,
        status=status,
        metadata_=metadata or {},
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )
    db.add(entry)
    await db.flush()
    return entry


async def deliver(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    message: NotificationMessage,
    webhook_url: str = "",
    client_id: Optional[uuid.UUID] = None,
    metadata: Optional[dict] = None,
) -> dict[str, DeliveryResult]:
    """Dispatch a message and write one log entry per channel attempted."""
    results = await get_channel_router().dispatch(
        message,
        {NotificationChannel.WEBHOOK.value: {"url": webhook_url}},
    )
    for channel, result in results.items():
        await log_notification(
            db,
            organization_id=organization_id,
            client_id=client_id,
            type=message.type.value,
            channel=channel,
            status=result.status.value,
            title=message.title,
            message=message.body,
            metadata={**(metadata or {}), "detail": result.detail, "recipients": len(message.to_emails)},
            related_entity_type=message.entity_type,
            related_entity_id=message.entity_id,
        )
    return results


async def list_logs(
    db: AsyncSession, client_id: uuid.UUID, limit: int = 50, type: Optional[str] = None
) -> list[NotificationLog]:
    stmt = select(NotificationLog).where(NotificationLog.client_id == client_id)
    if type:
        stmt = stmt.where(NotificationLog.type == type)
    stmt = stmt.order_by(NotificationLog.sent_at.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def send_test(db: AsyncSession, client: Client, to_email: str) -> dict[str, DeliveryResult]:
    """Send a test message to the configured webhook and to the caller's email."""
    prefs = await get_settings(db, client.id)
    channels = [NotificationChannel.EMAIL]
    if prefs.webhook_url:
        channels.append(NotificationChannel.WEBHOOK)

    message = NotificationMessage(
        type=NotificationType.TEST,
        title=f"ComplianceOS test notification for {client.name}",
        body="Notifications for this workspace are configured correctly.",
        client_id=str(client.id),
        client_name=client.name,
        channels=channels,
        to_emails=[to_email] if prefs.email_enabled else [],
    )
    results = await deliver(
        db,
        organization_id=client.organization_id,
        client_id=client.id,
        message=message,
        webhook_url=prefs.webhook_url,
    )
    logger.info(
        "test_notification_sent",
        client_id=str(client.id),
        results={k: v.status.value for k, v in results.items()},
    )
    return results
