"""Pydantic schemas for policies, employees, assignments and exceptions."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

PolicyModule = Literal["general", "privacy", "cyber"]
PolicyStatus = Literal["draft", "review", "approved", "archived"]


class PolicyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    content: Optional[str] = None
    module: PolicyModule = "general"
    status: PolicyStatus = "draft"
    owner: Optional[str] = Field(default=None, max_length=255)
    next_review_date: Optional[date] = None


class PolicyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None
    module: Optional[PolicyModule] = None
    status: Optional[PolicyStatus] = None
    owner: Optional[str] = Field(default=None, max_length=255)
    next_review_date: Optional[date] = None


class PolicyResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    name: str
    content: Optional[str]
    module: str
    status: str
    version: int
    owner: Optional[str]
    next_review_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PublishRequest(BaseModel):
    version: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class PolicyVersionResponse(BaseModel):
    id: uuid.UUID
    client_policy_id: uuid.UUID
    version: str
    content: Optional[str]
    status: str
    description: Optional[str]
    published_by: Optional[uuid.UUID]
    published_at: datetime

    model_config = {"from_attributes": True}


class EmployeeCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    job_title: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=255)


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    job_title: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=255)


class EmployeeResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    job_title: Optional[str]
    department: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignRequest(BaseModel):
    employee_ids: list[uuid.UUID] = Field(min_length=1)


class AssignmentResponse(BaseModel):
    id: uuid.UUID
    policy_id: uuid.UUID
    employee_id: uuid.UUID
    status: str
    assigned_at: datetime
    viewed_at: Optional[datetime] = None
    attested_at: Optional[datetime] = None
    employee_name: Optional[str] = None
    employee_email: Optional[str] = None
    policy_name: Optional[str] = None

    model_config = {"from_attributes": True}


class AttestationStats(BaseModel):
    assigned: int = 0
    viewed: int = 0
    attested: int = 0
    attestation_rate: int = 0


class ExceptionCreate(BaseModel):
    employee_id: uuid.UUID
    reason: str = Field(min_length=1)
    expiration_date: Optional[date] = None


class ExceptionReview(BaseModel):
    decision: Literal["approved", "rejected"]
    rejection_reason: Optional[str] = None


class ExceptionResponse(BaseModel):
    id: uuid.UUID
    policy_id: uuid.UUID
    employee_id: uuid.UUID
    reason: str
    status: str
    expiration_date: Optional[date]
    approved_by: Optional[uuid.UUID]
    approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
