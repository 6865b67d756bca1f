"""
Email channel tests. SMTP is replaced by a stub; nothing leaves the process.
"""

import asyncio

import aiosmtplib
import pytest

from complianceos.notifications.channels import EmailDispatcher
from complianceos.notifications.schemas import DeliveryStatus, NotificationMessage, NotificationType

SMTP = {"smtp_host": "smtp.example.com", "smtp_port": 587}


def _message() -> NotificationMessage:
    return NotificationMessage(
        type=NotificationType.OVERDUE_ALERT,
        title="Risk Digest: 1 Overdue Items",
        body="Encrypt laptops is 5 days overdue",
        to_emails=["owner@acme.io"],
    )


def _smtp_raising(exc: BaseException):
    async def _send(*args, **kwargs):
        raise exc

    return _send


@pytest.mark.asyncio
class TestEmailDispatcher:
    async def test_sent(self, monkeypatch):
        sent = []

        async def _send(msg, **kwargs):
            sent.append((msg["To"], kwargs["hostname"]))

        monkeypatch.setattr(aiosmtplib, "send", _send)
        result = await EmailDispatcher().dispatch(_message(), SMTP)
        assert result.status == DeliveryStatus.SENT
        assert sent == [("owner@acme.io", "smtp.example.com")]

    async def test_timeout_reported_as_failed(self, monkeypatch):
        monkeypatch.setattr(aiosmtplib, "send", _smtp_raising(asyncio.TimeoutError()))
        result = await EmailDispatcher().dispatch(_message(), SMTP)
        assert result.status == DeliveryStatus.FAILED
        assert result.detail == "TimeoutError"

    async def test_smtp_error_reported_as_failed(self, monkeypatch):
        monkeypatch.setattr(aiosmtplib, "send", _smtp_raising(aiosmtplib.SMTPException("relay denied")))
        result = await EmailDispatcher().dispatch(_message(), SMTP)
        assert result.status == DeliveryStatus.FAILED
        assert "relay denied" in result.detail

    async def test_no_recipients_skipped(self):
        message = NotificationMessage(type=NotificationType.TEST, title="Test", body="Configured")
        result = await EmailDispatcher().dispatch(message, SMTP)
        assert result.status == DeliveryStatus.SKIPPED
