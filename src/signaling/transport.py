"""
Call Transports
===============

Listener registry shared by every transport, plus the in-memory loopback
transport used for single-process demos and tests.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from utils.ml_logging import get_logger

from .types import CallEventTypes, TransportCallback

logger = get_logger("signaling.transport")

DEFAULT_HEARTBEAT_SECONDS = 25.0


class BaseCallTransport:
    """
    Listener registry with per-callback error isolation.

    Subclasses decide how events leave the process (``emit``) and call
    ``_dispatch`` whenever an event arrives for this process.
    """

    def __init__(self):
        self._listeners: Dict[str, List[TransportCallback]] = defaultdict(list)
        self._listeners_lock = threading.RLock()
        self._stats = {
            "events_emitted": 0,
            "events_delivered": 0,
            "listener_errors": 0,
        }

    def on(self, event: str, callback: TransportCallback) -> None:
        with self._listeners_lock:
            self._listeners[event].append(callback)
            count = len(self._listeners[event])
        logger.debug(
            "Listening for event",
            extra={"event_type": event, "transport_listener_count": count},
        )

    def off(self, event: str, callback: Optional[TransportCallback] = None) -> None:
        with self._listeners_lock:
            listeners = self._listeners.get(event)
            if not listeners:
                return
            if callback is None:
                listeners.clear()
            else:
                try:
                    listeners.remove(callback)
                except ValueError:
                    pass
        logger.debug("Removed listener", extra={"event_type": event})

    def listener_count(self, event: str) -> int:
        with self._listeners_lock:
            return len(self._listeners.get(event, ()))

    def _dispatch(self, event: str, payload: Any) -> int:
        """
        Invoke every listener for ``event`` in registration order.

        A listener that raises is logged and skipped; the remaining listeners
        still run and nothing propagates to the caller.
        """
        with self._listeners_lock:
            listeners = list(self._listeners.get(event, ()))

        delivered = 0
        for callback in listeners:
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                self._stats["listener_errors"] += 1
                callback_name = getattr(callback, "__name__", callback.__class__.__name__)
                logger.error(f"Error in listener {callback_name} for {event}: {e}")

        self._stats["events_delivered"] += delivered
        return delivered

    def _clear_listeners(self) -> None:
        with self._listeners_lock:
            self._listeners.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._listeners_lock:
            listener_counts = {k: len(v) for k, v in self._listeners.items() if v}
        return {
            **self._stats,
            "connected": self.is_connected(),
            "mock_mode": self.is_mock_mode(),
            "listeners": listener_counts,
        }

    def is_connected(self) -> bool:  # pragma: no cover - overridden
        raise NotImplementedError

    def is_mock_mode(self) -> bool:  # pragma: no cover - overridden
        raise NotImplementedError


class InMemoryLoopbackTransport(BaseCallTransport):
    """
    Process-local stand-in for a realtime push channel ("mock mode").

    Nothing ever leaves the process. ``emit`` logs the attempt, records it and
    hands the event straight back to local listeners; ``initiate-call`` comes
    back as ``incoming-call`` because there is no second party to translate it.
    """

    def __init__(
        self,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_SECONDS,
        history_size: int = 500,
    ):
        super().__init__()
        self.heartbeat_interval = heartbeat_interval
        self.user_id: Optional[str] = None
        self.user_role: Optional[str] = None
        self._token: Optional[str] = None
        self._connected = False
        self._connecting = False
        self._state_lock = threading.Lock()
        self._heartbeat_stop = threading.Event()
        self._heartbeat_thread: Optional[threading.Thread] = None
        self._sent: Deque[Tuple[str, Any, float]] = deque(maxlen=history_size)
        self.heartbeats_sent = 0

    def connect(
        self, token: str, user_id: Optional[str] = None, role: Optional[str] = None
    ) -> None:
        with self._state_lock:
            if self._connected or self._connecting:
                logger.debug("Loopback transport already connected")
                return
            self._connecting = True

        self._token = token
        self.user_id = user_id
        self.user_role = role
        self._heartbeat_stop.clear()
        if self.heartbeat_interval and self.heartbeat_interval > 0:
            self._heartbeat_thread = threading.Thread(
                target=self._heartbeat_loop, name="loopback-heartbeat", daemon=True
            )
            self._heartbeat_thread.start()

        with self._state_lock:
            self._connected = True
            self._connecting = False
        logger.info(
            "Loopback transport connected in mock mode",
            extra={"user_id": user_id or "-", "transport_role": role or "-"},
        )

    def _heartbeat_loop(self) -> None:
        while not self._heartbeat_stop.wait(self.heartbeat_interval):
            self.heartbeats_sent += 1
            logger.debug(
                "Mock heartbeat", extra={"event_type": CallEventTypes.HEARTBEAT}
            )

    def emit(self, event: str, payload: Any) -> bool:
        self._sent.append((event, payload, time.time()))
        self._stats["events_emitted"] += 1
        logger.info(f"[mock] emit {event}", extra={"event_type": event})

        delivered_as = (
            CallEventTypes.INCOMING_CALL
            if event == CallEventTypes.INITIATE_CALL
            else event
        )
        self._dispatch(delivered_as, payload)
        return True

    def deliver(self, event: str, payload: Any) -> int:
        """Inject an inbound event as though a remote peer had sent it."""
        logger.debug("Injecting inbound event", extra={"event_type": event})
        return self._dispatch(event, payload)

    @property
    def sent_events(self) -> List[Tuple[str, Any]]:
        return [(event, payload) for event, payload, _ in self._sent]

    def disconnect(self) -> None:
        self._heartbeat_stop.set()
        thread = self._heartbeat_thread
        self._heartbeat_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        with self._state_lock:
            was_connected = self._connected
            self._connected = False
            self._connecting = False
        self._clear_listeners()
        if was_connected:
            logger.info("Loopback transport disconnected")

    def is_connected(self) -> bool:
        return self._connected

    def is_mock_mode(self) -> bool:
        return True
