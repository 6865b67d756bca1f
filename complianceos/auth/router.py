"""
Auth API routes: register, login, me.

Uses bcrypt directly (passlib has compatibility issues with bcrypt 5.x).
Includes brute force protection and security audit logging.
"""

import asyncio
from datetime import datetime

import bcrypt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.auth.dependencies import get_current_user, get_db
from complianceos.auth.jwt import create_access_token
from complianceos.auth.schemas import LoginRequest, RegisterRequest, TokenResponse
from complianceos.db.models import Organization, User
from complianceos.middleware.brute_force import get_brute_force_protection
from complianceos.schemas.user import UserResponse
from complianceos.services.security_audit import get_audit_service, get_client_ip
from complianceos.services.user_service import to_user_response

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def issue_token(user: User) -> TokenResponse:
    """Build the token response for an authenticated user."""
    token = create_access_token(
        user_id=str(user.id),
        organization_id=str(user.organization_id),
        email=user.email,
        role=user.role,
    )
    return TokenResponse(
        access_token=token,
        user_id=str(user.id),
        organization_id=str(user.organization_id),
        email=user.email,
        role=user.role,
        name=user.name,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(body: RegisterRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Register a new organization and its first owner user."""
    email = body.email.lower()

    slug_taken = await db.scalar(
        select(func.count()).select_from(Organization).where(Organization.slug == body.organization_slug)
    )
    if slug_taken:
        raise HTTPException(status_code=409, detail="Organization slug already exists")

    email_taken = await db.scalar(select(func.count()).select_from(User).where(User.email == email))
    if email_taken:
        raise HTTPException(status_code=409, detail="Email already registered")

    org = Organization(
        name=body.organization_name,
        slug=body.organization_slug,
        industry=body.industry,
    )
    db.add(org)
    await db.flush()

    user = User(
        organization_id=org.id,
        email=email,
        password_hash=hash_password(body.password),
        name=body.name,
        role="owner",
    )
    db.add(user)
    await db.flush()

    logger.info("user_registered", user_id=str(user.id), organization_id=str(org.id))
    await get_audit_service().log_request_event(
        db, request, action="register", organization_id=org.id, user_id=user.id,
    )
    return issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Authenticate user and return JWT. Protected by brute force detection."""
    ip = get_client_ip(request)
    bf = get_brute_force_protection()
    email = body.email.lower()

    allowed, reason, retry_after = bf.check_allowed(ip, email)
    if not allowed:
        logger.warning("login_blocked", ip=ip, email=email, reason=reason)
        raise HTTPException(
            status_code=429,
            detail=reason,
            headers={"Retry-After": str(retry_after)},
        )

    delay = bf.get_progressive_delay(ip)
    if delay > 0:
        await asyncio.sleep(delay)

    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()

    if (
        user is None
        or user.deleted_at is not None
        or not user.is_active
        or not verify_password(body.password, user.password_hash)
    ):
        bf.record_failure(ip, email)
        await get_audit_service().log_request_event(
            db, request,
            action="login_failed",
            status="failure",
            organization_id=user.organization_id if user else None,
            details={"email": email},
        )
        # Persist the failure before the error response rolls the session back
        await db.commit()
        raise HTTPException(status_code=401, detail="Invalid email or password")

    bf.record_success(ip, email)
    user.last_login_at = datetime.utcnow()
    await db.flush()

    logger.info("user_logged_in", user_id=str(user.id))
    await get_audit_service().log_request_event(
        db, request, action="login", organization_id=user.organization_id, user_id=user.id,
    )
    return issue_token(user)


@router.get("/me", response_model=UserResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """The current user with their workspace memberships."""
    return (await to_user_response(db, [user]))[0]
