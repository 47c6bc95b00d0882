"""
Notification interface and fan-out.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers a subject and a plain-text body somewhere a human will read it."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name for logs."""
        ...

    @abstractmethod
    async def send(self, subject: str, text: str) -> bool:
        """Send a message.

        Returns:
            True if the transport accepted the message. Failures are logged,
            never raised.
        """
        ...


class CompositeNotifier(Notifier):
    """Sends through every configured transport."""

    def __init__(
        self,
        notifiers: list[Notifier] | None = None,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.notifiers = list(notifiers or [])
        self.log = log or logger

    @property
    def name(self) -> str:
        return "composite"

    async def send(self, subject: str, text: str) -> bool:
        """True when at least one transport delivered the message."""
        if not self.notifiers:
            self.log.info("Notifications disabled; skipped: %s", subject)
            return False

        delivered = False
        for notifier in self.notifiers:
            if await notifier.send(subject, text):
                delivered = True
            else:
                self.log.warning("%s notification not delivered: %s", notifier.name, subject)
        return delivered
