"""
Test fixtures for ComplianceOS.

Provides:
- Async DB session fixture (SQLite in-memory, fresh schema per test)
- Organization with one user per org role
- JWT headers per user and an ASGI test client with the DB overridden
- A recording notification router so no email or webhook leaves the process
- Helpers to create workspaces and adopt frameworks
"""

import os

# Must be set before anything imports complianceos.config
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["RATE_LIMIT_DEFAULT"] = "100000"
os.environ["RATE_LIMIT_BURST"] = "100000"
os.environ["JWT_SECRET"] = "test-secret-key-for-complianceos-tests-only"

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from complianceos.api.deps import get_db
from complianceos.auth.jwt import create_access_token
from complianceos.config import settings
from complianceos.db import models  # noqa: F401 - register all models
from complianceos.db.engine import Base, session_scope
from complianceos.db.models import Client, ClientMembership, Framework, Organization, User
from complianceos.main import app
from complianceos.middleware.brute_force import get_brute_force_protection
from complianceos.notifications.channels import ChannelRouter, set_channel_router
from complianceos.notifications.schemas import (
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
    NotificationMessage,
)
from complianceos.services.cache import invalidate_touched_clients
from complianceos.services.framework_catalog import seed_builtin_frameworks

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
PASSWORD_HASH = "$2b$12$fakehashfortest"


# ── Database ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory database with all tables and the built-in catalog."""
    eng = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_builtin_frameworks(session)
        await session.commit()
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Process-wide state ───────────────────────────────────────────────────


class RecordingDispatcher:
    """Accepts every message and remembers it."""

    def __init__(self, status: DeliveryStatus = DeliveryStatus.SENT):
        self.status = status
        self.messages: list[NotificationMessage] = []
        self.configs: list[dict] = []

    async def dispatch(self, message: NotificationMessage, config: dict) -> DeliveryResult:
        self.messages.append(message)
        self.configs.append(config)
        return DeliveryResult(status=self.status, detail="recorded")


class Outbox:
    def __init__(self):
        self.email = RecordingDispatcher()
        self.webhook = RecordingDispatcher()

    @property
    def emails(self) -> list[NotificationMessage]:
        return self.email.messages


@pytest.fixture(autouse=True)
def outbox():
    """Replace real SMTP/webhook delivery with recording dispatchers."""
    box = Outbox()
    set_channel_router(ChannelRouter({
        NotificationChannel.EMAIL: box.email,
        NotificationChannel.WEBHOOK: box.webhook,
    }))
    yield box
    set_channel_router(None)


@pytest.fixture(autouse=True)
def _isolate_process_state(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    get_brute_force_protection().reset()
    yield
    get_brute_force_protection().reset()


# ── Organization & users ─────────────────────────────────────────────────


async def _create_user(session_factory, organization: Organization, role: str, name: str | None = None) -> User:
    async with session_factory() as session:
        user = User(
            id=uuid.uuid4(),
            organization_id=organization.id,
            email=f"{role}-{uuid.uuid4().hex[:8]}@acme.io",
            password_hash=PASSWORD_HASH,
            name=name or f"Test {role.capitalize()}",
            role=role,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def organization(session_factory) -> Organization:
    async with session_factory() as session:
        org = Organization(id=uuid.uuid4(), name="Acme Compliance", slug=f"acme-{uuid.uuid4().hex[:8]}")
        session.add(org)
        await session.commit()
        await session.refresh(org)
        return org


@pytest_asyncio.fixture
async def other_organization(session_factory) -> Organization:
    async with session_factory() as session:
        org = Organization(id=uuid.uuid4(), name="Other Consulting", slug=f"other-{uuid.uuid4().hex[:8]}")
        session.add(org)
        await session.commit()
        await session.refresh(org)
        return org


@pytest_asyncio.fixture
async def owner_user(session_factory, organization) -> User:
    return await _create_user(session_factory, organization, "owner")


@pytest_asyncio.fixture
async def admin_user(session_factory, organization) -> User:
    return await _create_user(session_factory, organization, "admin")


@pytest_asyncio.fixture
async def member_user(session_factory, organization) -> User:
    return await _create_user(session_factory, organization, "member")


@pytest_asyncio.fixture
async def second_member(session_factory, organization) -> User:
    return await _create_user(session_factory, organization, "member", name="Second Member")


@pytest_asyncio.fixture
async def outsider_user(session_factory, other_organization) -> User:
    return await _create_user(session_factory, other_organization, "owner")


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(
        user_id=str(user.id),
        organization_id=str(user.organization_id),
        email=user.email,
        role=user.role,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


# ── HTTP client ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, owner_user):
    """Async test client authenticated as the organization owner."""

    async def _override_get_db():
        async with session_scope(session_factory) as session:
            yield session
        await invalidate_touched_clients(session)

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=auth_headers(owner_user),
    ) as c:
        yield c
    app.dependency_overrides.clear()


# ── Workspaces ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def workspace(session_factory, organization, owner_user) -> Client:
    """A client workspace owned by the organization owner."""
    async with session_factory() as session:
        ws = Client(id=uuid.uuid4(), organization_id=organization.id, name="Globex Corp", industry="fintech")
        session.add(ws)
        await session.flush()
        session.add(ClientMembership(client_id=ws.id, user_id=owner_user.id, role="owner"))
        await session.commit()
        await session.refresh(ws)
        return ws


@pytest.fixture
def add_member(session_factory):
    """Grant a user a workspace role."""

    async def _add(workspace: Client, user: User, role: str) -> None:
        async with session_factory() as session:
            session.add(ClientMembership(client_id=workspace.id, user_id=user.id, role=role))
            await session.commit()

    return _add


@pytest.fixture
def framework_id(session_factory):
    """Look up a built-in framework id by code."""

    async def _lookup(code: str) -> uuid.UUID:
        async with session_factory() as session:
            return (
                await session.execute(
                    select(Framework.id).where(Framework.code == code, Framework.organization_id.is_(None))
                )
            ).scalar_one()

    return _lookup


@pytest_asyncio.fixture
async def adopted_controls(client, workspace, framework_id) -> list[dict]:
    """Adopt ISO 27001 in the workspace and return its client controls."""
    fid = await framework_id("ISO27001")
    resp = await client.post(f"/api/v1/clients/{workspace.id}/frameworks/{fid}")
    assert resp.status_code == 200, resp.text
    controls = await client.get(f"/api/v1/clients/{workspace.id}/controls")
    assert controls.status_code == 200, controls.text
    return controls.json()
