"""
Notification Scheduler. Runs in a separate process (complianceos-scheduler),
not inside the API process.

Jobs:
1. Daily digest (DIGEST_DAILY_HOUR) for clients with daily_digest_enabled
2. Weekly digest (Mondays) for clients with weekly_digest_enabled
3. Overdue alerts (daily) for clients with overdue_enabled
4. Expiry (every hour): stale invitations and evidence past its validity
"""

from datetime import date
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from complianceos.config import settings
from complianceos.db.models import Client, NotificationSettings
from complianceos.services import digest, evidence_service, invitation_service

logger = structlog.get_logger(__name__)

# digest kind → NotificationSettings column gating it
_KIND_FLAGS = {
    "daily": NotificationSettings.daily_digest_enabled,
    "weekly": NotificationSettings.weekly_digest_enabled,
    "overdue": NotificationSettings.overdue_enabled,
}


class NotificationScheduler:
    """Background scheduler for digests, alerts and expiry."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register and start all scheduled jobs."""
        self.scheduler.add_job(
            self.run_daily_digests,
            CronTrigger(hour=settings.digest_daily_hour, minute=0),
            id="daily_digest",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_weekly_digests,
            CronTrigger(day_of_week=settings.digest_weekly_day, hour=settings.digest_daily_hour, minute=15),
            id="weekly_digest",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_overdue_alerts,
            CronTrigger(hour=settings.digest_daily_hour, minute=30),
            id="overdue_alerts",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.expire_stale,
            IntervalTrigger(hours=1),
            id="expire_stale",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("notification_scheduler_started")

    def stop(self):
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=True)
        logger.info("notification_scheduler_stopped")

    async def run_daily_digests(self, today: Optional[date] = None) -> dict:
        return await self._run("daily", today)

    async def run_weekly_digests(self, today: Optional[date] = None) -> dict:
        return await self._run("weekly", today)

    async def run_overdue_alerts(self, today: Optional[date] = None) -> dict:
        return await self._run("overdue", today)

    async def _eligible_clients(self, kind: str) -> list[Client]:
        """Clients whose settings enable `kind`. Clients without a settings row use the defaults."""
        flag = _KIND_FLAGS[kind]
        async with self.session_factory() as session:
            rows = await session.execute(
                select(Client, flag).outerjoin(NotificationSettings, NotificationSettings.client_id == Client.id)
            )
            defaults = {"daily": False, "weekly": True, "overdue": True}
            return [
                client
                for client, enabled in rows.all()
                if (defaults[kind] if enabled is None else enabled)
            ]

    async def _run(self, kind: str, today: Optional[date]) -> dict:
        """
        Send one digest kind to every eligible client.

        Error isolation: a failing client is logged and skipped.
        """
        logger.info("digest_run_started", kind=kind)
        clients = await self._eligible_clients(kind)
        sent = 0
        errors = 0

        for client in clients:
            try:
                async with self.session_factory() as session:
                    result = await digest.send_digest(session, client, kind, today=today)
                    await session.commit()
                if result.sent:
                    sent += 1
            except Exception as e:
                errors += 1
                logger.error(
                    "digest_failed",
                    kind=kind,
                    client_id=str(client.id),
                    error=str(e),
                )

        logger.info("digest_run_completed", kind=kind, clients=len(clients), sent=sent, errors=errors)
        return {"sent": sent, "errors": errors}

    async def expire_stale(self) -> dict:
        """Expire past-due invitations and evidence older than its validity window."""
        async with self.session_factory() as session:
            invitations = await invitation_service.expire_pending(session)
            evidence = await evidence_service.expire_stale_evidence(session)
            await session.commit()
        if invitations or evidence:
            logger.info("stale_records_expired", invitations=invitations, evidence=evidence)
        return {"invitations": invitations, "evidence": evidence}
