"""
Startup Backoffice Platform
Realtime fan-out.

Task and chat events are published to a topic scoped by board or
conversation id (``board:{id}``, ``conversation:{id}``). Only the envelope
is produced here; socket delivery and subscriptions live in the gateway
that listens on the same Redis channels.

Envelope:
    {"topic": "board:7", "event": "task_moved", "payload": {...},
     "published_at": "<iso8601>"}
"""

import json
import logging
from datetime import datetime, timezone

import redis
from flask import current_app

logger = logging.getLogger(__name__)

BOARD_EVENTS = {"task_created", "task_moved", "task_updated", "task_archived", "column_changed"}
CHAT_EVENTS = {"new_message", "messages_read"}
TOPIC_EVENTS = {"board": BOARD_EVENTS, "conversation": CHAT_EVENTS}


def board_topic(board_id):
    return f"board:{board_id}"


def conversation_topic(conversation_id):
    return f"conversation:{conversation_id}"


class RedisPublisher:
    def __init__(self, client):
        self.client = client

    def send(self, topic, envelope):
        self.client.publish(topic, json.dumps(envelope, default=str))


class LogPublisher:
    """Logs each envelope and keeps nothing (development default)."""

    def send(self, topic, envelope):
        logger.info("Realtime (log only): topic=%s event=%s", topic, envelope["event"])


class MemoryPublisher:
    """Records envelopes in `events` (development/testing)."""

    def __init__(self):
        self.events = []

    def send(self, topic, envelope):
        self.events.append(envelope)

    def for_topic(self, topic):
        return [e for e in self.events if e["topic"] == topic]

    def clear(self):
        self.events.clear()


class RealtimeHub:
    """Publishes well-formed event envelopes; delivery failures are logged."""

    def __init__(self, backend):
        self.backend = backend

    def publish(self, topic, event, payload):
        scope = topic.split(":", 1)[0]
        if event not in TOPIC_EVENTS.get(scope, ()):
            logger.warning("Unknown realtime event %s for topic %s", event, topic)
        envelope = {
            "topic": topic,
            "event": event,
            "payload": payload,
            "published_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.backend.send(topic, envelope)
        except Exception:
            logger.exception("Realtime publish failed: topic=%s event=%s", topic, event)
            return False
        return True


def init_realtime(app):
    """Attach a RealtimeHub to the app (``app.extensions["realtime"]``)."""
    kind = app.config.get("REALTIME_BACKEND", "memory")
    if kind == "redis":
        backend = RedisPublisher(redis.from_url(app.config["REDIS_URL"]))
    elif kind == "log":
        backend = LogPublisher()
    else:
        backend = MemoryPublisher()
    hub = RealtimeHub(backend)
    app.extensions["realtime"] = hub
    return hub


def get_realtime() -> RealtimeHub:
    return current_app.extensions["realtime"]
