"""
Notification channels: deliver messages by webhook or email.

Each channel is independent and fault-tolerant:
- Webhook: POST JSON to the client's configured URL (with SSRF protection)
- Email: plain-text MIMEText via SMTP (async)

A channel with no configuration reports `skipped` rather than `failed`.
"""

import asyncio
from email.mime.text import MIMEText
from typing import Optional, Protocol

import aiosmtplib
import httpx
import structlog

from complianceos.config import settings
from complianceos.notifications.schemas import (
    DeliveryResult,
    DeliveryStatus,
    NotificationChannel,
    NotificationMessage,
)
from complianceos.services.input_sanitizer import validate_webhook_url

logger = structlog.get_logger(__name__)


class ChannelDispatcher(Protocol):
    async def dispatch(self, message: NotificationMessage, config: dict) -> DeliveryResult:
        ...


class WebhookDispatcher:
    """POST a JSON payload to a webhook URL."""

    async def dispatch(self, message: NotificationMessage, config: dict) -> DeliveryResult:
        """
        Config keys:
        - url: Webhook URL (empty → skipped)
        - timeout: Request timeout in seconds (default: 10)
        """
        url = config.get("url")
        if not url:
            return DeliveryResult(status=DeliveryStatus.SKIPPED, detail="No webhook URL configured")

        is_valid, reason = validate_webhook_url(url)
        if not is_valid:
            logger.warning("webhook_ssrf_blocked", url=url, reason=reason)
            return DeliveryResult(status=DeliveryStatus.FAILED, detail=f"SSRF blocked: {reason}")

        try:
            async with httpx.AsyncClient(timeout=config.get("timeout", 10)) as client:
                response = await client.post(url, json=self.build_payload(message))
        except httpx.HTTPError as e:
            logger.error("webhook_dispatch_error", type=message.type.value, error=str(e))
            return DeliveryResult(status=DeliveryStatus.FAILED, detail=str(e))

        if response.status_code < 400:
            logger.info("webhook_sent", type=message.type.value, status=response.status_code)
            return DeliveryResult(status=DeliveryStatus.SENT, detail=f"HTTP {response.status_code}")
        logger.warning("webhook_failed", type=message.type.value, status=response.status_code)
        return DeliveryResult(status=DeliveryStatus.FAILED, detail=f"HTTP {response.status_code}")

    @staticmethod
    def build_payload(message: NotificationMessage) -> dict:
        # Slack-compatible: `text` renders in Slack, the rest is for generic consumers
        return {
            "text": f"*{message.title}*\n{message.body}",
            "type": message.type.value,
            "title": message.title,
            "message": message.body,
            "client_id": message.client_id,
            "client_name": message.client_name,
            "entity_type": message.entity_type,
            "entity_id": message.entity_id,
            "data": message.data,
            "created_at": message.created_at.isoformat(),
        }


class EmailDispatcher:
    """Send a plain-text email over SMTP."""

    async def dispatch(self, message: NotificationMessage, config: dict) -> DeliveryResult:
        """
        Config keys (falling back to SMTP_* settings):
        smtp_host, smtp_port, smtp_user, smtp_password, from_email
        """
        to_emails = message.to_emails
        if not to_emails:
            return DeliveryResult(status=DeliveryStatus.SKIPPED, detail="No recipient emails")

        smtp_host = config.get("smtp_host", settings.smtp_host)
        if not smtp_host:
            return DeliveryResult(status=DeliveryStatus.SKIPPED, detail="No SMTP host configured")

        msg = MIMEText(message.body)
        msg["Subject"] = message.title
        msg["From"] = config.get("from_email", settings.smtp_from_email)
        msg["To"] = ", ".join(to_emails)

        try:
            await aiosmtplib.send(
                msg,
                hostname=smtp_host,
                port=config.get("smtp_port", settings.smtp_port),
                username=config.get("smtp_user", settings.smtp_user) or None,
                password=config.get("smtp_password", settings.smtp_password) or None,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            detail = str(e) or type(e).__name__
            logger.error("email_dispatch_error", type=message.type.value, error=detail)
            return DeliveryResult(status=DeliveryStatus.FAILED, detail=detail)

        logger.info("email_sent", type=message.type.value, recipients=len(to_emails))
        return DeliveryResult(status=DeliveryStatus.SENT, detail=f"Sent to {len(to_emails)} recipients")


class ChannelRouter:
    """Routes a message to each of its channels and collects the results."""

    def __init__(self, dispatchers: Optional[dict[NotificationChannel, ChannelDispatcher]] = None):
        self._dispatchers: dict[NotificationChannel, ChannelDispatcher] = dispatchers or {
            NotificationChannel.WEBHOOK: WebhookDispatcher(),
            NotificationChannel.EMAIL: EmailDispatcher(),
        }

    async def dispatch(
        self,
        message: NotificationMessage,
        channel_configs: Optional[dict[str, dict]] = None,
    ) -> dict[str, DeliveryResult]:
        """Dispatch to every channel on the message. Returns channel name → result."""
        channel_configs = channel_configs or {}
        results: dict[str, DeliveryResult] = {}

        for channel in message.channels:
            dispatcher = self._dispatchers.get(channel)
            if dispatcher is None:
                results[channel.value] = DeliveryResult(
                    status=DeliveryStatus.FAILED, detail=f"Unknown channel: {channel}"
                )
                continue
            results[channel.value] = await dispatcher.dispatch(message, channel_configs.get(channel.value, {}))

        return results


_router: Optional[ChannelRouter] = None


def get_channel_router() -> ChannelRouter:
    global _router
    if _router is None:
        _router = ChannelRouter()
    return _router


def set_channel_router(router: Optional[ChannelRouter]) -> None:
    """Swap the process-wide router (tests install one with fake dispatchers)."""
    global _router
    _router = router
