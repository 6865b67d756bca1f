"""Pydantic schemas for Client workspaces."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ClientStatus = Literal["active", "onboarding", "inactive", "archived"]


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[str] = Field(default=None, max_length=50)
    status: ClientStatus = "active"
    logo_url: Optional[str] = Field(default=None, max_length=1024)
    primary_contact_name: Optional[str] = Field(default=None, max_length=255)
    primary_contact_email: Optional[EmailStr] = None
    primary_contact_phone: Optional[str] = Field(default=None, max_length=50)
    plan_tier: str = Field(default="standard", max_length=50)
    active_modules: list[str] = Field(default_factory=list)
    brand_primary_color: Optional[str] = Field(default=None, max_length=20)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[str] = Field(default=None, max_length=50)
    status: Optional[ClientStatus] = None
    logo_url: Optional[str] = Field(default=None, max_length=1024)
    primary_contact_name: Optional[str] = Field(default=None, max_length=255)
    primary_contact_email: Optional[EmailStr] = None
    primary_contact_phone: Optional[str] = Field(default=None, max_length=50)
    plan_tier: Optional[str] = Field(default=None, max_length=50)
    active_modules: Optional[list[str]] = None
    brand_primary_color: Optional[str] = Field(default=None, max_length=20)


class ClientResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: Optional[str]
    industry: Optional[str]
    size: Optional[str]
    status: str
    logo_url: Optional[str]
    primary_contact_name: Optional[str]
    primary_contact_email: Optional[str]
    primary_contact_phone: Optional[str]
    plan_tier: str
    active_modules: list
    brand_primary_color: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PolicyMappingCreate(BaseModel):
    client_control_id: uuid.UUID
    client_policy_id: uuid.UUID
