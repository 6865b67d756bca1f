"""Pydantic schemas for Invitation resource."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from complianceos.schemas.user import WorkspaceRole


class InvitationCreate(BaseModel):
    email: EmailStr
    role: WorkspaceRole = "viewer"
    client_id: Optional[uuid.UUID] = None


class InvitationAccept(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: str
    client_id: Optional[uuid.UUID] = None
    status: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime
    invited_by: Optional[uuid.UUID] = None
    inviter_name: Optional[str] = None
    inviter_email: Optional[str] = None

    model_config = {"from_attributes": True}


class InvitationLookup(BaseModel):
    """Public view of an invitation for the accept page."""

    email: str
    role: str
    organization_name: str
    client_name: Optional[str] = None
    expires_at: datetime
    status: str
