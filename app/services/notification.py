"""
Startup Backoffice Platform
Notification Service.

Lifecycle transitions emit a notification request ``{to, template, data}``
for the external mailer. Delivery is fire-and-forget: a failing transport
is logged and never rolls back or blocks the operation that triggered it.
Callers notify only after their transaction has committed.

Transports (NOTIFICATION_BACKEND):
    redis   LPUSH the JSON request onto NOTIFICATION_QUEUE_KEY for the mailer worker
    log     log the request only (development)
    memory  keep requests in a list (testing)
"""

import json
import logging
from datetime import datetime, timezone

import redis
from flask import current_app

logger = logging.getLogger(__name__)

# Templates the mailer knows how to render
TEMPLATES = {
    "questionnaire_submitted",
    "questionnaire_approved",
    "questionnaire_rejected",
    "questionnaire_revision_requested",
    "sprint_proposal_created",
    "sprint_package_selected",
    "sprint_documents_submitted",
    "sprint_meeting_scheduled",
    "sprint_payment_verified",
    "sprint_status_changed",
    "task_ready_for_review",
    "task_comment_mention",
}

# Recipient used when every admin should hear about an event
ADMIN_TEAM = {"type": "admin_team"}


# ── Transports ────────────────────────────────────────────────────────────

class RedisQueueTransport:
    """Queue requests on a Redis list consumed by the mailer worker."""

    def __init__(self, client, queue_key):
        self.client = client
        self.queue_key = queue_key

    def send(self, request):
        self.client.lpush(self.queue_key, json.dumps(request, default=str))


class LogTransport:
    def send(self, request):
        logger.info(
            "Notification (log only): template=%s to=%s",
            request["template"], request["to"],
        )


class MemoryTransport:
    """Keeps every request in `sent`, newest last."""

    def __init__(self):
        self.sent = []

    def send(self, request):
        self.sent.append(request)

    def clear(self):
        self.sent.clear()


# ── Notifier ──────────────────────────────────────────────────────────────

class Notifier:
    """Builds notification requests and hands them to a transport."""

    def __init__(self, transport):
        self.transport = transport

    def notify(self, to, template, data=None):
        """
        Emit one notification request.

        Returns:
            True when the transport accepted the request, False otherwise.
        """
        if template not in TEMPLATES:
            logger.warning("Unknown notification template: %s", template)
        request = {
            "to": to,
            "template": template,
            "data": data or {},
            "requested_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.transport.send(request)
        except Exception:
            logger.exception("Notification failed: template=%s to=%s", template, to)
            return False
        logger.debug("Notification queued: template=%s to=%s", template, to)
        return True

    def notify_many(self, recipients, template, data=None):
        return [self.notify(to, template, data) for to in recipients]


def _build_transport(app):
    backend = app.config.get("NOTIFICATION_BACKEND", "log")
    if backend == "redis":
        client = redis.from_url(app.config["REDIS_URL"], decode_responses=True)
        return RedisQueueTransport(client, app.config["NOTIFICATION_QUEUE_KEY"])
    if backend == "memory":
        return MemoryTransport()
    return LogTransport()


def init_notifier(app):
    """Attach a Notifier to the app (``app.extensions["notifier"]``)."""
    notifier = Notifier(_build_transport(app))
    app.extensions["notifier"] = notifier
    return notifier


def get_notifier() -> Notifier:
    return current_app.extensions["notifier"]
