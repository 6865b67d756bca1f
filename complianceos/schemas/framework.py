"""Pydantic schemas for frameworks, controls and client controls."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

ControlStatus = Literal["not_implemented", "in_progress", "implemented"]
Applicability = Literal["applicable", "not_applicable"]


class FrameworkCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    version: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class FrameworkResponse(BaseModel):
    id: uuid.UUID
    organization_id: Optional[uuid.UUID]
    code: str
    name: str
    version: Optional[str]
    description: Optional[str]
    built_in: bool = False

    model_config = {"from_attributes": True}


class ControlCreate(BaseModel):
    control_code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)


class ControlResponse(BaseModel):
    id: uuid.UUID
    framework_id: uuid.UUID
    control_code: str
    name: str
    description: Optional[str]
    category: Optional[str]

    model_config = {"from_attributes": True}


class AdoptFrameworkResponse(BaseModel):
    added: int
    skipped: int


class ClientControlUpdate(BaseModel):
    status: Optional[ControlStatus] = None
    applicability: Optional[Applicability] = None
    justification: Optional[str] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class ClientControlResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    control_id: uuid.UUID
    framework_id: uuid.UUID
    control_code: Optional[str] = None
    control_name: Optional[str] = None
    status: str
    applicability: str
    justification: Optional[str]
    implementation_date: Optional[date]
    owner: Optional[str]
    due_date: Optional[date]
    notes: Optional[str]
    updated_at: datetime

    model_config = {"from_attributes": True}
