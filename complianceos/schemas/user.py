"""Pydantic schemas for User and membership resources."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

OrgRole = Literal["member", "admin", "owner"]
WorkspaceRole = Literal["owner", "admin", "editor", "viewer"]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    role: OrgRole = "member"


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None


class RoleUpdate(BaseModel):
    role: OrgRole


class MembershipUpsert(BaseModel):
    role: WorkspaceRole


class MembershipInfo(BaseModel):
    client_id: uuid.UUID
    client_name: str
    role: str


class UserResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    name: str
    role: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    memberships: list[MembershipInfo] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    """A workspace member as seen from the client."""

    user_id: uuid.UUID
    name: str
    email: str
    role: str
    org_role: str
