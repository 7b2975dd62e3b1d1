"""
Call Event Bus
==============

Ordered, multi-subscriber observer used by the coordinator to notify
presentation-layer consumers of call lifecycle changes.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from utils.ml_logging import get_logger

logger = get_logger("signaling.bus")
tracer = trace.get_tracer(__name__)

Subscriber = Callable[[Any], None]


class CallEventBus:
    """
    Subscribers are kept per event name in registration order and can be
    removed individually. A failing subscriber never blocks the others.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.RLock()
        self._stats = {
            "events_published": 0,
            "deliveries": 0,
            "subscriber_errors": 0,
        }

    def subscribe(self, event: str, callback: Subscriber) -> None:
        """
        Register ``callback`` for ``event``.

        :param event: Event name (e.g. ``incoming-call``)
        :type event: str
        :param callback: Callable receiving the event payload
        :type callback: Callable[[Any], None]
        """
        with self._lock:
            self._subscribers[event].append(callback)
            total = len(self._subscribers[event])

        logger.debug(
            "Registered subscriber",
            extra={
                "event_type": event,
                "event_subscriber": getattr(callback, "__name__", repr(callback)),
                "event_subscriber_count": total,
            },
        )

    def unsubscribe(self, event: str, callback: Optional[Subscriber] = None) -> int:
        """
        Remove one subscriber, or all of them when ``callback`` is None.

        :return: Number of subscribers removed
        :rtype: int
        """
        with self._lock:
            subscribers = self._subscribers.get(event)
            if not subscribers:
                return 0
            if callback is None:
                removed = len(subscribers)
                subscribers.clear()
                return removed
            try:
                subscribers.remove(callback)
                return 1
            except ValueError:
                return 0

    def publish(self, event: str, payload: Any) -> int:
        """
        Deliver ``payload`` to every subscriber of ``event`` synchronously.

        :return: Number of subscribers that handled the event without raising
        :rtype: int
        """
        with self._lock:
            subscribers = list(self._subscribers.get(event, ()))

        with tracer.start_as_current_span(
            "call_event_bus.publish",
            kind=SpanKind.INTERNAL,
            attributes={"event.type": event, "subscribers.count": len(subscribers)},
        ):
            delivered = 0
            for callback in subscribers:
                try:
                    callback(payload)
                    delivered += 1
                except Exception as e:
                    self._stats["subscriber_errors"] += 1
                    name = getattr(callback, "__name__", callback.__class__.__name__)
                    logger.error(f"Subscriber {name} failed for {event}: {e}")

            self._stats["events_published"] += 1
            self._stats["deliveries"] += delivered
            return delivered

    def subscriber_count(self, event: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event, ()))

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            counts = {k: len(v) for k, v in self._subscribers.items() if v}
        return {**self._stats, "subscribers": counts}
