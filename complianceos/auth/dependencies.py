"""
FastAPI dependencies for authentication and tenant context.

TenantMiddleware decodes the JWT; these dependencies turn request.state
into typed values and re-check the user row so that deleted or
deactivated accounts lose access immediately.
"""

import uuid

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.engine import session_scope
from complianceos.db.models import User
from complianceos.services.cache import invalidate_touched_clients


async def get_db(request: Request) -> AsyncSession:
    """One session per request, committed when the endpoint returns.

    Cached aggregates of clients written by the request are dropped after the commit.
    """
    async with session_scope() as session:
        yield session
    await invalidate_touched_clients(session)


def get_organization_id(request: Request) -> uuid.UUID:
    """Extract organization_id from request state (set by TenantMiddleware)."""
    organization_id = getattr(request.state, "organization_id", None)
    if not organization_id:
        raise HTTPException(status_code=401, detail="Missing tenant context")
    return uuid.UUID(str(organization_id))


def get_user_id(request: Request) -> uuid.UUID:
    """Extract user_id from request state (set by TenantMiddleware)."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user context")
    return uuid.UUID(str(user_id))


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    organization_id: uuid.UUID = Depends(get_organization_id),
    user_id: uuid.UUID = Depends(get_user_id),
) -> User:
    """Load the authenticated user and refresh request.state.user_role from the DB."""
    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.organization_id == organization_id,
        )
    )
    user = result.scalar_one_or_none()
    if user is None or user.deleted_at is not None or not user.is_active:
        raise HTTPException(status_code=401, detail="User account is not active")
    request.state.user_role = user.role
    return user
