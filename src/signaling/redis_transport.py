"""
Redis pub/sub transport.

Every user listens on ``<prefix>:user:<user_id>``. Emitting routes the event with
the same rule the HTTP relay uses and publishes a JSON envelope to each
recipient's channel.

Call outcomes (``call-response``, ``call-ended``) are also published to
``<prefix>:observers``. A service process that starts calls on behalf of users
connects with ``observe_calls=True`` so its coordinator learns how those calls
end even though it is neither party.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from src.redis.manager import RedisManager
from utils.ml_logging import get_logger

from .routing import OBSERVED_EVENTS, route_event
from .transport import BaseCallTransport
from .types import TransportError, now_ms

logger = get_logger("signaling.redis_transport")

DEFAULT_CHANNEL_PREFIX = "telecall"


class RedisCallTransport(BaseCallTransport):
    def __init__(
        self,
        manager: RedisManager,
        *,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        sleep_time: float = 0.1,
        observe_calls: bool = False,
    ):
        super().__init__()
        self.manager = manager
        self.channel_prefix = channel_prefix
        self.sleep_time = sleep_time
        self.observe_calls = observe_calls
        self.user_id: Optional[str] = None
        self.user_role: Optional[str] = None
        self._pubsub = None
        self._worker = None
        self._state_lock = threading.Lock()

    def channel_for(self, user_id: str) -> str:
        return f"{self.channel_prefix}:user:{user_id}"

    @property
    def observer_channel(self) -> str:
        return f"{self.channel_prefix}:observers"

    def connect(
        self, token: str, user_id: Optional[str] = None, role: Optional[str] = None
    ) -> None:
        """
        Subscribe to this user's channel (plus the observer channel when
        ``observe_calls`` is set) and start the pub/sub worker thread.

        :raises TransportError: When ``user_id`` is missing
        """
        with self._state_lock:
            if self._worker is not None:
                logger.debug("Redis transport already connected")
                return
            if not user_id:
                raise TransportError("Cannot connect - user_id is required for Redis signaling")

            self.user_id = user_id
            self.user_role = role
            channel = self.channel_for(user_id)
            self._pubsub = self.manager.pubsub()
            channels = {channel: self._on_message}
            if self.observe_calls:
                channels[self.observer_channel] = self._on_message
            self._pubsub.subscribe(**channels)
            self._worker = self._pubsub.run_in_thread(
                sleep_time=self.sleep_time, daemon=True
            )

        logger.info(
            f"Redis transport subscribed to {', '.join(channels)}",
            extra={"user_id": user_id, "transport_role": role or "-"},
        )

    def _on_message(self, message: Dict[str, Any]) -> None:
        raw = message.get("data")
        try:
            envelope = json.loads(raw)
            event = envelope["event"]
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Dropping malformed signaling message: {e}")
            return

        # observers also receive the outcomes they published themselves
        if envelope.get("from") == self.user_id:
            return

        logger.debug(
            f"Received {event} from {envelope.get('from', '-')}",
            extra={"event_type": event},
        )
        self._dispatch(event, envelope.get("data"))

    def emit(self, event: str, payload: Any) -> bool:
        if not self.user_id:
            logger.warning(f"Cannot emit {event} - not connected", extra={"event_type": event})
            return False

        recipients = route_event(self.user_id, event, payload)
        if not recipients:
            logger.debug(f"No recipients for {event}", extra={"event_type": event})
            return True

        published = False
        for recipient_id, delivered_type in recipients:
            if self._publish(self.channel_for(recipient_id), delivered_type, payload):
                published = True

        # best effort; the return value reflects delivery to the parties only
        if event in OBSERVED_EVENTS:
            self._publish(self.observer_channel, event, payload)

        if published:
            self._stats["events_emitted"] += 1
        return published

    def _publish(self, channel: str, event: str, payload: Any) -> bool:
        envelope = json.dumps(
            {
                "event": event,
                "data": payload,
                "from": self.user_id,
                "timestamp": now_ms(),
            }
        )
        try:
            self.manager.publish(channel, envelope)
            return True
        except RedisError as e:
            logger.error(
                f"Failed to publish {event} to {channel}: {e}",
                extra={"event_type": event},
            )
            return False

    def disconnect(self) -> None:
        with self._state_lock:
            worker, pubsub = self._worker, self._pubsub
            self._worker = None
            self._pubsub = None

        if worker is not None:
            worker.stop()
        if pubsub is not None:
            try:
                pubsub.close()
            except RedisError as e:
                logger.warning(f"Error closing pub/sub: {e}")
            logger.info("Redis transport disconnected", extra={"user_id": self.user_id or "-"})

    def is_connected(self) -> bool:
        return self._worker is not None

    def is_mock_mode(self) -> bool:
        return False
