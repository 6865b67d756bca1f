"""Pydantic schemas for business continuity."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

ProgramStatus = Literal["draft", "approved", "active"]
BiaStatus = Literal["draft", "in_progress", "completed", "approved"]
PlanStatus = Literal["draft", "approved"]


class ProgramUpsert(BaseModel):
    program_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    scope_description: Optional[str] = None
    policy_statement: Optional[str] = None
    budget_allocated: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[ProgramStatus] = None


class ProgramResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    program_name: str
    scope_description: Optional[str]
    policy_statement: Optional[str]
    budget_allocated: Optional[Decimal]
    status: str
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProcessCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    department: Optional[str] = Field(default=None, max_length=255)
    criticality_tier: Optional[str] = Field(default=None, max_length=50)
    rto: Optional[str] = Field(default=None, max_length=20)
    rpo: Optional[str] = Field(default=None, max_length=20)
    mtpd: Optional[str] = Field(default=None, max_length=20)


class ProcessUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    department: Optional[str] = Field(default=None, max_length=255)
    criticality_tier: Optional[str] = Field(default=None, max_length=50)
    rto: Optional[str] = Field(default=None, max_length=20)
    rpo: Optional[str] = Field(default=None, max_length=20)
    mtpd: Optional[str] = Field(default=None, max_length=20)


class ProcessResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    name: str
    description: Optional[str]
    department: Optional[str]
    criticality_tier: Optional[str]
    rto: Optional[str]
    rpo: Optional[str]
    mtpd: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class BiaCreate(BaseModel):
    process_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    methodology: Optional[str] = None


class BiaStatusUpdate(BaseModel):
    status: BiaStatus


class RecoveryObjectiveCreate(BaseModel):
    activity: str = Field(min_length=1, max_length=255)
    criticality: Optional[str] = Field(default=None, max_length=50)
    rto: Optional[str] = Field(default=None, max_length=20)
    rpo: Optional[str] = Field(default=None, max_length=20)
    mtpd: Optional[str] = Field(default=None, max_length=20)
    dependencies: Optional[str] = None
    resources: Optional[str] = None


class RecoveryObjectiveResponse(BaseModel):
    id: uuid.UUID
    bia_id: uuid.UUID
    activity: str
    criticality: Optional[str]
    rto: Optional[str]
    rpo: Optional[str]
    mtpd: Optional[str]
    dependencies: Optional[str]
    resources: Optional[str]

    model_config = {"from_attributes": True}


class BiaResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    process_id: uuid.UUID
    title: str
    status: str
    methodology: Optional[str]
    approved_by: Optional[uuid.UUID]
    approved_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BiaDetail(BiaResponse):
    recovery_objectives: list[RecoveryObjectiveResponse] = Field(default_factory=list)


class PlanCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    status: PlanStatus = "draft"
    last_tested_date: Optional[date] = None


class PlanUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[PlanStatus] = None
    last_tested_date: Optional[date] = None


class PlanResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    title: str
    status: str
    last_tested_date: Optional[date]
    created_at: datetime

    model_config = {"from_attributes": True}
