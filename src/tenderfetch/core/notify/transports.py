"""
Notification transports.

- RelayNotifier: POSTs to a serverless relay that fans out to mail and chat
- ChatWebhookNotifier: posts straight to an incoming chat webhook
- MailNotifier: SMTP over SSL
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any

import httpx

from tenderfetch.core.config.models import MailConfig, NotificationConfig
from tenderfetch.core.retries import with_retry

from .base import CompositeNotifier, Notifier

logger = logging.getLogger(__name__)

RELAY_STATUS_MESSAGES = {
    400: "relay rejected the message: subject and body are required",
    401: "relay rejected the shared secret",
    500: "relay failed while forwarding",
}


class _HttpNotifier(Notifier):
    """Shared httpx plumbing for JSON-over-HTTP transports."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self.log = log or logger

    @with_retry(httpx.TransportError)
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(self.url, json=payload)


class RelayNotifier(_HttpNotifier):
    """Serverless relay accepting ``{apiKey, subject, text, timestamp}``.

    The relay answers 401 for a bad shared secret, 400 for a missing subject
    or body and 500 when forwarding fails. Script hosts that always answer
    200 report the same codes in a JSON body (``success``/``statusCode``).
    """

    def __init__(self, url: str, api_key: str, **kwargs: Any):
        super().__init__(url, **kwargs)
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "relay"

    async def send(self, subject: str, text: str) -> bool:
        payload = {
            "apiKey": self.api_key,
            "subject": subject,
            "text": text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            self.log.error("Relay notification failed: %s", e)
            return False

        status = response.status_code
        if response.is_success:
            status = _body_status(response) or status

        if 200 <= status < 300:
            self.log.info("Notification sent: %s", subject)
            return True

        reason = RELAY_STATUS_MESSAGES.get(status, "unexpected relay response")
        self.log.error("Notification not sent (%d): %s", status, reason)
        return False


def _body_status(response: httpx.Response) -> int | None:
    """Status code reported inside a JSON body, if the body reports failure."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("success") is False:
        return int(body.get("statusCode") or 500)
    return None


class ChatWebhookNotifier(_HttpNotifier):
    """Incoming chat webhook taking ``{"text": ...}``."""

    @property
    def name(self) -> str:
        return "chat"

    async def send(self, subject: str, text: str) -> bool:
        try:
            response = await self._post({"text": f"*{subject}*\n\n{text}"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.log.error("Chat notification failed: %s", e)
            return False

        self.log.info("Chat notification sent: %s", subject)
        return True


class MailNotifier(Notifier):
    """SMTP over SSL (Gmail by default)."""

    def __init__(
        self,
        config: MailConfig,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.config = config
        self.log = log or logger

    @property
    def name(self) -> str:
        return "mail"

    def _build_message(self, subject: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.config.user or ""
        message["To"] = ", ".join(self.config.to)
        message.set_content(text)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=30) as smtp:
            if self.config.user:
                smtp.login(self.config.user, self.config.password or "")
            smtp.send_message(message)

    async def send(self, subject: str, text: str) -> bool:
        if not self.config.to:
            self.log.error("Mail notification has no recipients")
            return False

        try:
            await asyncio.to_thread(self._deliver, self._build_message(subject, text))
        except (smtplib.SMTPException, OSError) as e:
            self.log.error("Mail notification failed: %s", e)
            return False

        self.log.info("Mail sent to %s: %s", ", ".join(self.config.to), subject)
        return True


def build_notifier(
    config: NotificationConfig,
    *,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> CompositeNotifier:
    """Notifier for every transport enabled in the configuration."""
    notifiers: list[Notifier] = []

    if config.enabled:
        if config.relay_url and config.api_key:
            notifiers.append(
                RelayNotifier(config.relay_url, config.api_key, timeout=config.timeout_seconds, log=log)
            )
        elif config.relay_url:
            (log or logger).warning("Relay URL set without an API key; relay disabled")
        if config.chat_webhook_url:
            notifiers.append(
                ChatWebhookNotifier(config.chat_webhook_url, timeout=config.timeout_seconds, log=log)
            )

    if config.mail.enabled:
        notifiers.append(MailNotifier(config.mail, log=log))

    return CompositeNotifier(notifiers, log=log)
