"""
Notification Schemas.

A NotificationMessage is channel-agnostic; dispatchers render it for their
transport (JSON for webhooks, plain text for email).
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class NotificationChannel(StrEnum):
    WEBHOOK = "webhook"
    EMAIL = "email"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"     # Channel not configured


class NotificationType(StrEnum):
    OVERDUE_ALERT = "overdue_alert"
    UPCOMING_REMINDER = "upcoming_reminder"
    DAILY_DIGEST = "daily_digest"
    WEEKLY_DIGEST = "weekly_digest"
    INVITATION = "invitation"
    TEST = "test"


class NotificationMessage(BaseModel):
    type: NotificationType
    title: str
    body: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    channels: list[NotificationChannel] = Field(default_factory=lambda: [NotificationChannel.EMAIL])
    to_emails: list[str] = Field(default_factory=list)
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    data: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DeliveryResult(BaseModel):
    status: DeliveryStatus
    detail: str = ""

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.SENT
