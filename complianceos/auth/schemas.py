"""Request and response bodies for /api/v1/auth."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from complianceos.config import settings


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class RegisterRequest(BaseModel):
    """A new organization together with its owner account."""

    organization_name: str = Field(min_length=1, max_length=255)
    organization_slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9\-]*$")
    industry: Optional[str] = Field(default=None, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    normalize_email = field_validator("email")(_normalize_email)

    @field_validator("organization_name", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    normalize_email = field_validator("email")(_normalize_email)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(default_factory=lambda: settings.jwt_access_token_expire_minutes * 60)
    user_id: str
    organization_id: str
    name: str
    email: str
    role: str
