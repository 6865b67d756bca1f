"""Pydantic schemas for the risk register."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

TreatmentType = Literal["mitigate", "avoid", "transfer", "accept"]
TreatmentStatus = Literal["planned", "in_progress", "implemented", "completed", "cancelled"]
Effectiveness = Literal["effective", "partially_effective", "ineffective", "not_tested"]


class ThreatCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    source: Optional[str] = Field(default=None, max_length=100)
    intent: Optional[str] = Field(default=None, max_length=100)
    likelihood: Optional[int] = Field(default=None, ge=1, le=5)


class ThreatUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    source: Optional[str] = Field(default=None, max_length=100)
    intent: Optional[str] = Field(default=None, max_length=100)
    likelihood: Optional[int] = Field(default=None, ge=1, le=5)


class ThreatResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    threat_id: str
    name: str
    description: Optional[str]
    category: Optional[str]
    source: Optional[str]
    intent: Optional[str]
    likelihood: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class VulnerabilityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    severity: Optional[str] = Field(default=None, max_length=20)


class VulnerabilityUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    severity: Optional[str] = Field(default=None, max_length=20)


class VulnerabilityResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    vulnerability_id: str
    name: str
    description: Optional[str]
    category: Optional[str]
    severity: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class AssessmentUpsert(BaseModel):
    id: Optional[uuid.UUID] = None
    title: str = Field(min_length=1, max_length=500)
    threat_description: Optional[str] = None
    threat_ref_id: Optional[uuid.UUID] = None
    vulnerability_ref_id: Optional[uuid.UUID] = None
    likelihood: int = Field(ge=1, le=5)
    impact: int = Field(ge=1, le=5)
    owner: Optional[str] = Field(default=None, max_length=255)
    next_review_date: Optional[date] = None


class AssessmentResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    assessment_id: str
    title: str
    threat_description: Optional[str]
    threat_ref_id: Optional[uuid.UUID]
    vulnerability_ref_id: Optional[uuid.UUID]
    likelihood: int
    impact: int
    inherent_score: int
    inherent_risk: str
    residual_score: Optional[int]
    residual_risk: Optional[str]
    status: str
    owner: Optional[str]
    next_review_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TreatmentCreate(BaseModel):
    treatment_type: TreatmentType
    strategy: str = Field(min_length=1)
    justification: Optional[str] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    due_date: Optional[date] = None
    status: TreatmentStatus = "planned"
    client_control_id: Optional[uuid.UUID] = None
    control_effectiveness: Optional[Effectiveness] = None


class TreatmentUpdate(BaseModel):
    strategy: Optional[str] = Field(default=None, min_length=1)
    justification: Optional[str] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    due_date: Optional[date] = None
    status: Optional[TreatmentStatus] = None
    client_control_id: Optional[uuid.UUID] = None
    control_effectiveness: Optional[Effectiveness] = None


class TreatmentResponse(BaseModel):
    id: uuid.UUID
    risk_assessment_id: uuid.UUID
    treatment_type: str
    strategy: str
    justification: Optional[str]
    owner: Optional[str]
    due_date: Optional[date]
    status: str
    client_control_id: Optional[uuid.UUID]
    control_effectiveness: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class DueItem(BaseModel):
    """An overdue or upcoming review/treatment."""

    type: str
    id: uuid.UUID
    title: str
    due_date: date
    days_overdue: int = 0
    days_until: int = 0
    priority: str
