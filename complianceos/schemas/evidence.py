"""Pydantic schemas for Evidence and Evidence Files."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

EvidenceStatus = Literal["pending", "collected", "verified", "rejected", "expired", "not_applicable"]


class EvidenceCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    evidence_type: str = Field(default="document", max_length=50)
    framework: Optional[str] = Field(default=None, max_length=100)
    client_control_id: Optional[uuid.UUID] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    due_date: Optional[date] = None


class EvidenceStatusUpdate(BaseModel):
    status: EvidenceStatus


class IntegrationLink(BaseModel):
    integration: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1)


class EvidenceResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    client_control_id: Optional[uuid.UUID]
    title: str
    description: Optional[str]
    evidence_type: str
    framework: Optional[str]
    location: Optional[str]
    integration: Optional[str]
    status: str
    owner: Optional[str]
    due_date: Optional[date]
    last_verified: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FileLink(BaseModel):
    file_id: uuid.UUID


class EvidenceFileResponse(BaseModel):
    id: uuid.UUID
    evidence_id: uuid.UUID
    filename: str
    file_url: str
    file_key: str
    content_type: Optional[str]
    file_size: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}
