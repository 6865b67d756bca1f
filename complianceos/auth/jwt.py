"""
Access tokens.

HS256 JWTs carrying the user (`sub`), their organization (`org`) and
organization role. The role is a hint only: get_current_user() reloads it
from the database on every request.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from jose import JWTError, jwt

from complianceos.config import settings


class TokenError(Exception):
    """Raised when a token cannot be decoded or lacks required claims."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    organization_id: str
    email: str
    role: str
    token_id: str


def create_access_token(
    user_id: str,
    organization_id: str,
    email: str,
    role: str = "member",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "org": str(organization_id),
        "email": email,
        "role": role,
        "iss": settings.jwt_issuer,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenClaims:
    """Verify signature, expiry and issuer. Raises TokenError on any failure."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        raise TokenError(f"Invalid token: {e}") from e

    if not payload.get("sub") or not payload.get("org"):
        raise TokenError("Token missing subject or organization")
    return TokenClaims(
        user_id=payload["sub"],
        organization_id=payload["org"],
        email=payload.get("email", ""),
        role=payload.get("role", "member"),
        token_id=payload.get("jti", ""),
    )
