"""
Scheduler job tests. Jobs are invoked directly; APScheduler is not started.
"""

from datetime import date, datetime, timedelta

import pytest

from complianceos.db.models import Evidence, Invitation, NotificationSettings, RiskAssessment, RiskTreatment
from complianceos.services.scheduler import NotificationScheduler

TODAY = date(2026, 6, 15)


@pytest.fixture
def scheduler(session_factory):
    return NotificationScheduler(session_factory)


async def _overdue_work(session_factory, workspace):
    async with session_factory() as session:
        assessment = RiskAssessment(
            client_id=workspace.id,
            assessment_id="RA-2026-001",
            title="Phishing",
            likelihood=4,
            impact=4,
            inherent_score=16,
            inherent_risk="High",
            residual_score=16,
            residual_risk="High",
        )
        session.add(assessment)
        await session.flush()
        session.add(RiskTreatment(
            client_id=workspace.id,
            risk_assessment_id=assessment.id,
            treatment_type="mitigate",
            strategy="Security awareness training",
            due_date=TODAY - timedelta(days=2),
        ))
        await session.commit()


@pytest.mark.asyncio
class TestDigestJobs:
    async def test_overdue_uses_defaults_without_settings_row(self, scheduler, session_factory, workspace, outbox):
        await _overdue_work(session_factory, workspace)
        assert await scheduler.run_overdue_alerts(today=TODAY) == {"sent": 1, "errors": 0}
        assert outbox.emails[0].title == "Risk Digest: 1 Overdue Items"

    async def test_daily_off_by_default(self, scheduler, session_factory, workspace, outbox):
        await _overdue_work(session_factory, workspace)
        assert await scheduler.run_daily_digests(today=TODAY) == {"sent": 0, "errors": 0}
        assert outbox.emails == []

    async def test_daily_when_enabled(self, scheduler, session_factory, workspace, outbox):
        await _overdue_work(session_factory, workspace)
        async with session_factory() as session:
            session.add(NotificationSettings(client_id=workspace.id, daily_digest_enabled=True))
            await session.commit()
        assert await scheduler.run_daily_digests(today=TODAY) == {"sent": 1, "errors": 0}

    async def test_weekly_skips_disabled_clients(self, scheduler, session_factory, workspace, outbox):
        await _overdue_work(session_factory, workspace)
        async with session_factory() as session:
            session.add(NotificationSettings(client_id=workspace.id, weekly_digest_enabled=False))
            await session.commit()
        assert await scheduler.run_weekly_digests(today=TODAY) == {"sent": 0, "errors": 0}


@pytest.mark.asyncio
class TestExpiry:
    async def test_expires_invitations_and_evidence(self, scheduler, session_factory, organization, workspace):
        now = datetime.utcnow()
        async with session_factory() as session:
            session.add_all([
                Invitation(
                    organization_id=organization.id,
                    email="late@acme.io",
                    token="expired-token",
                    expires_at=now - timedelta(hours=1),
                ),
                Invitation(
                    organization_id=organization.id,
                    email="fresh@acme.io",
                    token="fresh-token",
                    expires_at=now + timedelta(days=3),
                ),
                Evidence(
                    client_id=workspace.id,
                    title="Old pentest",
                    status="verified",
                    last_verified=now - timedelta(days=400),
                ),
                Evidence(client_id=workspace.id, title="New pentest", status="verified", last_verified=now),
            ])
            await session.commit()

        assert await scheduler.expire_stale() == {"invitations": 1, "evidence": 1}
        assert await scheduler.expire_stale() == {"invitations": 0, "evidence": 0}
