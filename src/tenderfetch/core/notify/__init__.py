"""Run notifications."""

from .base import CompositeNotifier, Notifier
from .messages import build_error_message, build_run_message
from .transports import ChatWebhookNotifier, MailNotifier, RelayNotifier, build_notifier

__all__ = [
    "ChatWebhookNotifier",
    "CompositeNotifier",
    "MailNotifier",
    "Notifier",
    "RelayNotifier",
    "build_error_message",
    "build_notifier",
    "build_run_message",
]
