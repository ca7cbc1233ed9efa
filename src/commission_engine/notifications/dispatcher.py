"""Notification dispatch for commission and tier events.

Delivery is fire-and-forget: failures are logged and never raised back into
the commission workflow.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class NotificationConfig:
    def __init__(self):
        self.enabled = os.getenv("CE_NOTIFICATIONS_ENABLED", "false").lower() == "true"
        self.method = os.getenv("CE_NOTIFICATION_METHOD", "log")
        self.webhook_url = os.getenv("CE_WEBHOOK_URL")
        self.timeout = float(os.getenv("CE_WEBHOOK_TIMEOUT", "5"))


class LoggingNotifier:
    """Writes notifications to the log only."""

    def notify(self, agent_id: str, event_type: str, payload: Dict[str, Any]):
        logger.info(f"Notification {event_type} for agent {agent_id}: {payload}")


class WebhookNotifier:
    """POSTs notifications as JSON to a webhook endpoint."""

    def __init__(self, url: str, timeout: float = 5, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def notify(self, agent_id: str, event_type: str, payload: Dict[str, Any]):
        body = {
            "event_type": event_type,
            "agent_id": agent_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Webhook failed for {event_type} ({agent_id}): {e}")


class FanoutNotifier:
    """Deliver to several dispatchers; one failing does not stop the rest."""

    def __init__(self, dispatchers: List):
        self.dispatchers = list(dispatchers)

    def notify(self, agent_id: str, event_type: str, payload: Dict[str, Any]):
        for dispatcher in self.dispatchers:
            try:
                dispatcher.notify(agent_id, event_type, payload)
            except Exception as e:
                logger.error(f"Notifier {type(dispatcher).__name__} failed for {event_type}: {e}")


def create_notifier(config: Optional[NotificationConfig] = None):
    """Build the dispatcher described by environment configuration."""
    config = config or NotificationConfig()
    if not config.enabled:
        return LoggingNotifier()

    if config.method == "webhook":
        if not config.webhook_url:
            logger.warning("Webhook notifications enabled without CE_WEBHOOK_URL, logging only")
            return LoggingNotifier()
        return FanoutNotifier([LoggingNotifier(), WebhookNotifier(config.webhook_url, config.timeout)])

    return LoggingNotifier()
