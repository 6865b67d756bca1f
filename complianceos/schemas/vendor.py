"""Pydantic schemas for Vendors, DPA templates and vendor DPAs."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Criticality = Literal["High", "Medium", "Low"]
VendorStatus = Literal["Active", "Onboarding", "Inactive"]
DpaStatus = Literal["Draft", "Review", "Signed", "Archived"]


class VendorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    website: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    criticality: Criticality = "Low"
    data_access: str = Field(default="Internal", max_length=50)
    status: VendorStatus = "Active"
    is_subprocessor: bool = False
    uses_ai: bool = False
    data_categories: list[str] = Field(default_factory=list)
    contact_email: Optional[EmailStr] = None


class VendorUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    website: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    criticality: Optional[Criticality] = None
    data_access: Optional[str] = Field(default=None, max_length=50)
    status: Optional[VendorStatus] = None
    is_subprocessor: Optional[bool] = None
    uses_ai: Optional[bool] = None
    data_categories: Optional[list[str]] = None
    contact_email: Optional[EmailStr] = None


class VendorResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    name: str
    description: Optional[str]
    website: Optional[str]
    category: Optional[str]
    criticality: str
    data_access: str
    status: str
    review_status: str
    is_subprocessor: bool
    uses_ai: bool
    data_categories: list
    contact_email: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VendorStats(BaseModel):
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    needs_review: int = 0
    subprocessors: int = 0


class OnboardingStart(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    website: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    criticality: Criticality = "Low"
    uses_ai: bool = False
    contact_email: Optional[EmailStr] = None


class DataMapping(BaseModel):
    data_categories: list[str] = Field(default_factory=list)
    data_access: str = Field(default="Internal", max_length=50)
    is_subprocessor: bool = False


class OnboardingSubmit(BaseModel):
    template_id: Optional[uuid.UUID] = None


class OnboardingDecision(BaseModel):
    decision: Literal["approved", "rejected"]


class DpaTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    is_default: bool = False
    jurisdiction: Optional[str] = Field(default=None, max_length=100)


class DpaTemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    is_default: Optional[bool] = None
    jurisdiction: Optional[str] = Field(default=None, max_length=100)


class DpaTemplateResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    content: str
    version: int
    is_default: bool
    jurisdiction: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class VendorDpaCreate(BaseModel):
    template_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None


class DpaStatusUpdate(BaseModel):
    status: DpaStatus


class VendorDpaResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    vendor_id: uuid.UUID
    template_id: Optional[uuid.UUID]
    name: str
    content: str
    status: str
    version: int
    signed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
