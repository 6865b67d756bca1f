"""
Risk & Compliance Digest.

compute_digest() returns pure data (no delivery) for one client:
overdue and upcoming risk reviews, risk treatments, control due dates,
policy renewals and evidence expirations, filtered by the client's
notification toggles. Each category is capped at DIGEST_ITEM_LIMIT items.

send_digest() renders the digest, picks recipients (workspace owners and
admins, plus organization admins holding a membership) and delivers it.
A digest that is not sent leaves a "skipped" log entry with the reason.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Literal, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.auth.rbac import ClientRole, Role, effective_client_role
from complianceos.config import settings
from complianceos.db.models import (
    Client,
    ClientControl,
    ClientMembership,
    ClientPolicy,
    Control,
    Evidence,
    NotificationSettings,
    RiskAssessment,
    RiskTreatment,
    User,
)
from complianceos.notifications.schemas import NotificationChannel, NotificationMessage, NotificationType
from complianceos.schemas.notification import DigestSendResult
from complianceos.services import notification_service
from complianceos.services.risk_service import CLOSED_TREATMENT_STATUSES, level_priority

logger = structlog.get_logger(__name__)

DigestKind = Literal["overdue", "upcoming", "daily", "weekly"]

_KIND_TYPES = {
    "overdue": NotificationType.OVERDUE_ALERT,
    "upcoming": NotificationType.UPCOMING_REMINDER,
    "daily": NotificationType.DAILY_DIGEST,
    "weekly": NotificationType.WEEKLY_DIGEST,
}

_TYPE_LABELS = {
    "risk_review": "Risk review",
    "risk_treatment": "Risk treatment",
    "control_due": "Control",
    "policy_renewal": "Policy renewal",
    "evidence_expiration": "Evidence",
}


@dataclass
class DigestItem:
    type: str
    entity_id: str
    title: str
    due_date: date
    days: int           # days overdue, or days until due
    priority: str = "medium"


@dataclass
class Digest:
    overdue: list[DigestItem] = field(default_factory=list)
    upcoming: list[DigestItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.overdue and not self.upcoming


# ── Computation ──────────────────────────────────────────────────────────


async def _candidates(
    db: AsyncSession, client_id: uuid.UUID, prefs: NotificationSettings
) -> dict[str, list[tuple[str, str, date, str]]]:
    """category → [(entity_id, title, due_date, priority)] for every enabled category."""
    out: dict[str, list[tuple[str, str, date, str]]] = {}

    if prefs.notify_risk_reviews:
        reviews = await db.execute(
            select(RiskAssessment).where(
                RiskAssessment.client_id == client_id,
                RiskAssessment.status == "approved",
                RiskAssessment.next_review_date.is_not(None),
            )
        )
        out["risk_review"] = [
            (str(a.id), a.title or a.assessment_id, a.next_review_date, level_priority(a.inherent_risk))
            for a in reviews.scalars().all()
        ]

        treatments = await db.execute(
            select(RiskTreatment, RiskAssessment.inherent_risk)
            .join(RiskAssessment, RiskAssessment.id == RiskTreatment.risk_assessment_id)
            .where(
                RiskTreatment.client_id == client_id,
                RiskTreatment.due_date.is_not(None),
                RiskTreatment.status.not_in(CLOSED_TREATMENT_STATUSES),
            )
        )
        out["risk_treatment"] = [
            (str(t.id), t.strategy, t.due_date, level_priority(level))
            for t, level in treatments.all()
        ]

    if prefs.notify_control_reviews:
        controls = await db.execute(
            select(ClientControl.id, Control.control_code, Control.name, ClientControl.due_date)
            .join(Control, Control.id == ClientControl.control_id)
            .where(
                ClientControl.client_id == client_id,
                ClientControl.status != "implemented",
                ClientControl.applicability != "not_applicable",
                ClientControl.due_date.is_not(None),
            )
        )
        out["control_due"] = [
            (str(cc_id), f"{code} {name}", due, "high") for cc_id, code, name, due in controls.all()
        ]

    if prefs.notify_policy_renewals:
        policies = await db.execute(
            select(ClientPolicy).where(
                ClientPolicy.client_id == client_id,
                ClientPolicy.status != "archived",
                ClientPolicy.next_review_date.is_not(None),
            )
        )
        out["policy_renewal"] = [
            (str(p.id), p.name, p.next_review_date, "medium") for p in policies.scalars().all()
        ]

    if prefs.notify_evidence_expiration:
        validity = timedelta(days=settings.evidence_validity_days)
        evidence = await db.execute(
            select(Evidence).where(
                Evidence.client_id == client_id,
                Evidence.status.in_(("verified", "expired")),
                Evidence.last_verified.is_not(None),
            )
        )
        out["evidence_expiration"] = [
            (str(e.id), e.title, (e.last_verified + validity).date(), "medium")
            for e in evidence.scalars().all()
        ]

    return out


def build_digest(
    candidates: dict[str, list[tuple[str, str, date, str]]],
    today: date,
    upcoming_days: int,
    limit: int = 20,
) -> Digest:
    """Split candidates into overdue and upcoming items, capped per category."""
    horizon = today + timedelta(days=upcoming_days)
    digest = Digest()

    for category, rows in candidates.items():
        overdue = [
            DigestItem(category, entity_id, title, due, (today - due).days, priority)
            for entity_id, title, due, priority in rows
            if due < today
        ]
        upcoming = [
            DigestItem(category, entity_id, title, due, (due - today).days, priority)
            for entity_id, title, due, priority in rows
            if today <= due <= horizon
        ]
        overdue.sort(key=lambda i: i.days, reverse=True)
        upcoming.sort(key=lambda i: i.due_date)
        digest.overdue.extend(overdue[:limit])
        digest.upcoming.extend(upcoming[:limit])

    digest.overdue.sort(key=lambda i: i.days, reverse=True)
    digest.upcoming.sort(key=lambda i: i.due_date)
    return digest


async def compute_digest(
    db: AsyncSession,
    client_id: uuid.UUID,
    prefs: Optional[NotificationSettings] = None,
    today: Optional[date] = None,
    upcoming_days: Optional[int] = None,
) -> Digest:
    prefs = prefs or await notification_service.get_settings(db, client_id)
    return build_digest(
        await _candidates(db, client_id, prefs),
        today or date.today(),
        upcoming_days if upcoming_days is not None else prefs.upcoming_review_days,
        limit=settings.digest_item_limit,
    )


# ── Rendering ────────────────────────────────────────────────────────────


def _item_line(item: DigestItem, overdue: bool) -> str:
    label = _TYPE_LABELS.get(item.type, item.type)
    when = f"{item.days} days overdue" if overdue else f"due in {item.days} days"
    return f"  - [{item.priority.upper()}] {label}: {item.title} (due {item.due_date.isoformat()}, {when})"


def format_digest_email(client_name: str, digest: Digest, period: str = "daily") -> tuple[str, str]:
    """Render (subject, plain-text body)."""
    if digest.overdue:
        subject = f"Risk Digest: {len(digest.overdue)} Overdue Items"
    else:
        subject = f"Risk Digest: {len(digest.upcoming)} Upcoming Deadlines"
    if period == "weekly":
        subject = f"Weekly {subject}"

    lines = [f"{client_name}: your {period} risk and compliance digest", ""]
    if digest.overdue:
        lines.append(f"Overdue ({len(digest.overdue)})")
        lines.extend(_item_line(item, overdue=True) for item in digest.overdue)
        lines.append("")
    if digest.upcoming:
        lines.append(f"Upcoming ({len(digest.upcoming)})")
        lines.extend(_item_line(item, overdue=False) for item in digest.upcoming)
        lines.append("")
    if digest.is_empty:
        lines.append("No overdue or upcoming items. You're all caught up.")
        lines.append("")
    lines.append("This is an automated digest from ComplianceOS.")
    return subject, "\n".join(lines)


# ── Delivery ─────────────────────────────────────────────────────────────


async def digest_recipients(db: AsyncSession, client_id: uuid.UUID) -> list[str]:
    """Emails of active members acting as workspace ADMIN or above."""
    rows = await db.execute(
        select(User.email, User.role, ClientMembership.role)
        .join(ClientMembership, ClientMembership.user_id == User.id)
        .where(
            ClientMembership.client_id == client_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    emails = []
    for email, org_role, membership_role in rows.all():
        role = effective_client_role(Role.from_str(org_role), membership_role)
        if role is not None and role >= ClientRole.ADMIN:
            emails.append(email)
    return sorted(set(emails))


def _toggle_enabled(prefs: NotificationSettings, kind: DigestKind) -> bool:
    if kind == "overdue":
        return prefs.overdue_enabled
    if kind == "daily":
        return prefs.daily_digest_enabled
    if kind == "weekly":
        return prefs.weekly_digest_enabled
    return True


async def _skip(
    db: AsyncSession, client: Client, kind: DigestKind, reason: str, **counts: int
) -> DigestSendResult:
    """Record a digest that was not sent and return the matching result."""
    await notification_service.log_notification(
        db,
        organization_id=client.organization_id,
        client_id=client.id,
        type=_KIND_TYPES[kind].value,
        status="skipped",
        metadata={"reason": reason, **counts},
    )
    logger.info("digest_skipped", client_id=str(client.id), kind=kind, reason=reason)
    return DigestSendResult(sent=False, reason=reason, **counts)


async def send_digest(
    db: AsyncSession, client: Client, kind: DigestKind, today: Optional[date] = None
) -> DigestSendResult:
    prefs = await notification_service.get_settings(db, client.id)
    if not prefs.email_enabled:
        return await _skip(db, client, kind, "email_disabled")
    if not _toggle_enabled(prefs, kind):
        return await _skip(db, client, kind, f"{kind}_disabled")

    upcoming_days = settings.weekly_digest_days if kind == "weekly" else prefs.upcoming_review_days
    digest = await compute_digest(db, client.id, prefs, today=today, upcoming_days=upcoming_days)
    if kind == "overdue":
        digest.upcoming = []
    elif kind == "upcoming":
        digest.overdue = []

    counts = {"overdue_count": len(digest.overdue), "upcoming_count": len(digest.upcoming)}
    if digest.is_empty:
        return await _skip(db, client, kind, "no_items", **counts)

    recipients = await digest_recipients(db, client.id)
    subject, body = format_digest_email(client.name, digest, "weekly" if kind == "weekly" else "daily")

    channels = [NotificationChannel.EMAIL]
    if prefs.webhook_url:
        channels.append(NotificationChannel.WEBHOOK)
    message = NotificationMessage(
        type=_KIND_TYPES[kind],
        title=subject,
        body=body,
        client_id=str(client.id),
        client_name=client.name,
        channels=channels,
        to_emails=recipients,
        data=counts,
    )
    results = await notification_service.deliver(
        db,
        organization_id=client.organization_id,
        client_id=client.id,
        message=message,
        webhook_url=prefs.webhook_url,
        metadata=counts,
    )
    sent = any(result.success for result in results.values())
    logger.info(
        "digest_sent" if sent else "digest_not_delivered",
        client_id=str(client.id),
        kind=kind,
        recipients=len(recipients),
        **counts,
    )
    return DigestSendResult(
        sent=sent,
        recipients=len(recipients),
        reason=None if sent else "delivery_failed",
        **counts,
    )
