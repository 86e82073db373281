from __future__ import annotations

"""Best-effort change notifications.

When ``REDIS_URL`` is set, every batch of applied operations is announced on
``<prefix>.<event_type>`` so other processes (dashboards, cache invalidation)
can refresh without polling. Publishing never fails a request.
"""

import json
import logging
import os
from datetime import UTC, datetime
from typing import Any, Dict, Optional

try:  # pragma: no cover - optional dependency
    import redis  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    redis = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_PREFIX = "assistant.events"


def _envelope(event_type: str, payload: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "type": event_type,
            "emitted_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "data": payload,
        },
        default=str,
    )


class ChangePublisher:
    def __init__(self, url: str, channel_prefix: str = DEFAULT_CHANNEL_PREFIX) -> None:
        self.url = url
        self.channel_prefix = channel_prefix.rstrip(".")
        self._client = None
        self._ensure_client()

    def _ensure_client(self) -> bool:
        if self._client is not None:
            return True
        if redis is None:
            return False
        try:
            client = redis.Redis.from_url(self.url, socket_timeout=0.5)
            client.ping()
        except Exception as exc:
            logger.warning("event_publisher_unavailable", extra={"err": str(exc)})
            return False
        self._client = client
        return True

    def channel_for(self, event_type: str) -> str:
        return f"{self.channel_prefix}.{event_type}"

    def publish(self, event_type: str, payload: Dict[str, Any]) -> bool:
        if not self._ensure_client():
            return False
        channel = self.channel_for(event_type)
        try:
            self._client.publish(channel, _envelope(event_type, payload))
        except Exception as exc:
            # Drop the connection; the next event reconnects
            logger.warning("event_publish_failed", extra={"channel": channel, "err": str(exc)})
            self._client = None
            return False
        return True


_publisher: Optional[ChangePublisher] = None


def _get_publisher() -> Optional[ChangePublisher]:
    global _publisher
    if _publisher is None:
        url = os.getenv("REDIS_URL")
        if not url:
            return None
        _publisher = ChangePublisher(url, os.getenv("ASSISTANT_EVENTS_PREFIX") or DEFAULT_CHANNEL_PREFIX)
    return _publisher


def publish_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """Announce ``event_type``; returns whether the message left the process."""
    publisher = _get_publisher()
    if publisher is None:
        return False
    return publisher.publish(event_type, payload)
