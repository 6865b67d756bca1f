"""
Security Audit Trail Tests.

Tests: hash computation, sequence-ordered chain linkage, tamper detection,
concurrent appends from separate sessions.
"""

import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from complianceos.db.engine import Base
from complianceos.db.models import AuditChainHead, SecurityAuditLog
from complianceos.services.security_audit import AuditQuery, SecurityAuditService, _compute_entry_hash

FIELDS = dict(
    sequence=1,
    entry_id="id",
    timestamp="ts",
    action="login",
    organization_id="org",
    client_id="client",
    user_id="uid",
    resource="policy:42",
    status="success",
    previous_hash="prev",
)


class TestComputeEntryHash:
    def test_deterministic(self):
        assert _compute_entry_hash(**FIELDS) == _compute_entry_hash(**FIELDS)

    def test_hash_is_sha256(self):
        h = _compute_entry_hash(**FIELDS)
        assert len(h) == 64
        int(h, 16)

    @pytest.mark.parametrize("field", sorted(FIELDS))
    def test_every_field_changes_hash(self, field):
        changed = dict(FIELDS)
        changed[field] = 2 if field == "sequence" else f"{FIELDS[field]}x"
        assert _compute_entry_hash(**FIELDS) != _compute_entry_hash(**changed)


@pytest.mark.asyncio
class TestSecurityAuditService:
    async def test_first_entry_starts_chain(self, db: AsyncSession):
        entry = await SecurityAuditService().log_event(db, action="login", user_id=uuid.uuid4())
        assert entry.sequence == 1
        assert entry.previous_hash is None
        assert len(entry.entry_hash) == 64

    async def test_entries_are_linked(self, db: AsyncSession):
        svc = SecurityAuditService()
        first = await svc.log_event(db, action="login")
        second = await svc.log_event(db, action="client_created", details={"name": "Globex"})
        assert second.sequence == 2
        assert second.previous_hash == first.entry_hash

    async def test_empty_chain(self, db: AsyncSession):
        report = await SecurityAuditService().verify_chain_integrity(db)
        assert report["status"] == "empty"
        assert report["chain_intact"] is True

    async def test_intact_chain(self, db: AsyncSession):
        svc = SecurityAuditService()
        for action in ("login", "client_created", "policy_published"):
            await svc.log_event(db, action=action, organization_id=uuid.uuid4(), resource_type="client")
        report = await svc.verify_chain_integrity(db)
        assert report["status"] == "intact"
        assert report["total_entries"] == 3
        assert report["breaks_found"] == 0

    async def test_tampered_action_detected(self, db: AsyncSession):
        svc = SecurityAuditService()
        await svc.log_event(db, action="login")
        victim = await svc.log_event(db, action="user_deleted")
        await svc.log_event(db, action="login")

        await db.execute(
            update(SecurityAuditLog).where(SecurityAuditLog.id == victim.id).values(action="login")
        )
        db.expire_all()

        report = await svc.verify_chain_integrity(db)
        assert report["status"] == "broken"
        assert [(b["sequence"], b["issue"]) for b in report["breaks"]] == [(2, "entry_hash_mismatch")]

    async def test_tampered_resource_detected(self, db: AsyncSession):
        svc = SecurityAuditService()
        entry = await svc.log_event(db, action="evidence_status_changed", resource_type="evidence", resource_id="e1")
        await db.execute(
            update(SecurityAuditLog).where(SecurityAuditLog.id == entry.id).values(resource_id="e2")
        )
        db.expire_all()
        assert (await svc.verify_chain_integrity(db))["chain_intact"] is False

    async def test_deleted_entry_detected(self, db: AsyncSession):
        svc = SecurityAuditService()
        await svc.log_event(db, action="login")
        middle = await svc.log_event(db, action="policy_published")
        await svc.log_event(db, action="logout")

        await db.execute(delete(SecurityAuditLog).where(SecurityAuditLog.id == middle.id))
        db.expire_all()

        report = await svc.verify_chain_integrity(db)
        issues = {b["issue"] for b in report["breaks"]}
        assert issues == {"sequence_gap", "previous_hash_mismatch"}


@pytest.mark.asyncio
class TestListEvents:
    async def test_scoped_filtered_and_newest_first(self, db: AsyncSession):
        svc = SecurityAuditService()
        org, other_org, client_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        await svc.log_event(db, action="login", organization_id=org)
        await svc.log_event(db, action="client_created", organization_id=org, client_id=client_id)
        await svc.log_event(db, action="policy_published", organization_id=org, client_id=client_id)
        await svc.log_event(db, action="login", organization_id=other_org)

        events, total = await svc.list_events(db, AuditQuery(organization_id=org))
        assert total == 3
        assert [e.action for e in events] == ["policy_published", "client_created", "login"]

        events, total = await svc.list_events(db, AuditQuery(organization_id=org, client_id=client_id, limit=1))
        assert total == 2
        assert [e.action for e in events] == ["policy_published"]

        _, total = await svc.list_events(db, AuditQuery(organization_id=org, action="login"))
        assert total == 1


@pytest.mark.asyncio
class TestConcurrentAppends:
    @pytest_asyncio.fixture
    async def file_factory(self, tmp_path):
        eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}")
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
        await eng.dispose()

    async def test_two_sessions_append_in_order(self, file_factory):
        svc = SecurityAuditService()
        async with file_factory() as first, file_factory() as second:
            a = await svc.log_event(first, action="login")
            pending = asyncio.create_task(svc.log_event(second, action="client_created"))
            await asyncio.sleep(0.2)
            assert not pending.done()

            await first.commit()
            b = await asyncio.wait_for(pending, timeout=10)
            await second.commit()

        assert (a.sequence, b.sequence) == (1, 2)
        assert b.previous_hash == a.entry_hash
        async with file_factory() as check:
            report = await svc.verify_chain_integrity(check)
        assert report["status"] == "intact"
        assert report["total_entries"] == 2

    async def test_rolled_back_append_releases_sequence(self, file_factory):
        svc = SecurityAuditService()
        async with file_factory() as session:
            await svc.log_event(session, action="login")
            await session.rollback()
            entry = await svc.log_event(session, action="login")
            await session.commit()
        assert entry.sequence == 1
        assert entry.previous_hash is None

    async def test_existing_entries_without_head_are_continued(self, db: AsyncSession):
        svc = SecurityAuditService()
        first = await svc.log_event(db, action="login")
        await db.execute(delete(AuditChainHead))

        second = await svc.log_event(db, action="logout")
        assert second.sequence == 2
        assert second.previous_hash == first.entry_hash
