"""Notification delivery for agent-facing events."""

from .dispatcher import (
    NotificationConfig,
    LoggingNotifier,
    WebhookNotifier,
    FanoutNotifier,
    create_notifier,
)

__all__ = [
    "NotificationConfig",
    "LoggingNotifier",
    "WebhookNotifier",
    "FanoutNotifier",
    "create_notifier",
]
