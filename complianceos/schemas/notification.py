"""Pydantic schemas for notification settings, logs and digest sends."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class NotificationSettingsUpdate(BaseModel):
    email_enabled: Optional[bool] = None
    overdue_enabled: Optional[bool] = None
    upcoming_review_days: Optional[int] = Field(default=None, ge=1, le=90)
    daily_digest_enabled: Optional[bool] = None
    weekly_digest_enabled: Optional[bool] = None
    notify_control_reviews: Optional[bool] = None
    notify_policy_renewals: Optional[bool] = None
    notify_evidence_expiration: Optional[bool] = None
    notify_risk_reviews: Optional[bool] = None
    webhook_url: Optional[str] = Field(default=None, max_length=1024)


class NotificationSettingsResponse(BaseModel):
    client_id: uuid.UUID
    email_enabled: bool
    overdue_enabled: bool
    upcoming_review_days: int
    daily_digest_enabled: bool
    weekly_digest_enabled: bool
    notify_control_reviews: bool
    notify_policy_renewals: bool
    notify_evidence_expiration: bool
    notify_risk_reviews: bool
    webhook_url: str

    model_config = {"from_attributes": True}


class DigestSendResult(BaseModel):
    sent: bool
    overdue_count: int = 0
    upcoming_count: int = 0
    recipients: int = 0
    reason: Optional[str] = None


class NotificationLogResponse(BaseModel):
    id: uuid.UUID
    client_id: Optional[uuid.UUID]
    type: str
    channel: str
    title: Optional[str]
    message: Optional[str]
    status: str
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_")
    sent_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class TestNotificationResult(BaseModel):
    results: dict[str, dict]
