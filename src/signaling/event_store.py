"""
Event Relay Store
=================

In-memory per-user event queues backing the HTTP signaling relay. Polling
clients post events with ``add_event`` and read their own queue with
``get_events``; the routing rule decides whose queue an event lands in.
"""

import random
import threading
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

from utils.ml_logging import get_logger

from .routing import route_event

logger = get_logger("signaling.event_store")

DEFAULT_RETENTION_SECONDS = 3600


def _event_id(timestamp_ms: int) -> str:
    return f"event_{timestamp_ms}_{random.randint(0, 10**9 - 1):09d}"


class EventStore:
    """Thread-safe store of routed signaling events keyed by recipient user id."""

    def __init__(self):
        self._events: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = threading.Lock()
        self._stats = {
            "events_received": 0,
            "events_routed": 0,
            "events_unrouted": 0,
            "events_expired": 0,
        }

    def add_event(self, user_id: str, event_type: str, data: Any) -> str:
        """
        Stamp and route an event posted by ``user_id``.

        :return: The generated event id, returned even when nobody receives it
        :rtype: str
        """
        timestamp = int(time.time() * 1000)
        event_id = _event_id(timestamp)
        recipients = route_event(user_id, event_type, data)

        with self._lock:
            self._stats["events_received"] += 1
            if not recipients:
                self._stats["events_unrouted"] += 1
            for recipient_id, delivered_type in recipients:
                self._events[recipient_id].append(
                    {
                        "id": event_id,
                        "eventType": delivered_type,
                        "data": data,
                        "timestamp": timestamp,
                        "userId": recipient_id,
                        "from": user_id,
                    }
                )
                self._stats["events_routed"] += 1

        logger.info(
            f"Relay event {event_type} from {user_id} -> "
            f"{[r for r, _ in recipients] or 'nobody'}",
            extra={"event_type": event_type, "event_id": event_id},
        )
        return event_id

    def get_events(self, user_id: str, since: Optional[int] = 0) -> List[Dict[str, Any]]:
        """Return a copy of ``user_id``'s events newer than ``since`` (ms)."""
        since = since or 0
        with self._lock:
            return [dict(e) for e in self._events.get(user_id, ()) if e["timestamp"] > since]

    def clear_old_events(self, max_age_seconds: float = DEFAULT_RETENTION_SECONDS) -> int:
        cutoff = int(time.time() * 1000) - int(max_age_seconds * 1000)
        removed = 0
        with self._lock:
            for user_id in list(self._events):
                kept = [e for e in self._events[user_id] if e["timestamp"] >= cutoff]
                removed += len(self._events[user_id]) - len(kept)
                if kept:
                    self._events[user_id] = kept
                else:
                    del self._events[user_id]
            self._stats["events_expired"] += removed

        if removed:
            logger.info(f"Cleared {removed} expired relay events")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                **self._stats,
                "users": len(self._events),
                "queued_events": sum(len(v) for v in self._events.values()),
            }
