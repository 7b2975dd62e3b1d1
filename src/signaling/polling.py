"""
HTTP polling transport.

Talks to the event relay (``/api/v1/events``): authenticates once, then polls the
user's queue on a background thread and dispatches every event it receives.
Emitting posts the event to the relay, which routes it to the other party.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

import httpx

from utils.ml_logging import get_logger

from .transport import BaseCallTransport
from .types import TransportError, now_ms

logger = get_logger("signaling.polling")

DEFAULT_POLL_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_RECONNECT_ATTEMPTS = 3
RECONNECT_BASE_DELAY_SECONDS = 2.0
RECONNECT_MAX_DELAY_SECONDS = 10.0
POLL_ERROR_LOG_EVERY = 10


class PollingCallTransport(BaseCallTransport):
    """
    :param base_url: Relay root, e.g. ``http://localhost:8000/api/v1/events``
    :param poll_interval: Seconds between polls
    :param max_reconnect_attempts: Authentication retries before giving up
    :param client: Optional pre-built ``httpx.Client`` (tests inject a MockTransport)
    :param timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_reconnect_attempts = max_reconnect_attempts
        self.timeout = timeout

        self._client = client
        self._owns_client = client is None

        self.user_id: Optional[str] = None
        self.user_role: Optional[str] = None
        self._token: Optional[str] = None
        self._authenticated = False
        self._polling = False
        self.last_event_time = 0

        self._reconnect_attempts = 0
        self._poll_failures = 0
        self._reconnect_timer: Optional[threading.Timer] = None
        self._poll_stop = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._state_lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Connection lifecycle
    # ------------------------------------------------------------------ #
    def connect(
        self, token: str, user_id: Optional[str] = None, role: Optional[str] = None
    ) -> None:
        """
        Authenticate against the relay and start polling.

        :raises TransportError: When no user id / role is available
        """
        with self._state_lock:
            if self._polling and self._authenticated:
                if user_id and role:
                    self.user_id, self.user_role = user_id, role
                logger.debug("Polling transport already connected")
                return

            user_id = user_id or self.user_id
            role = role or self.user_role
            if not user_id or not role:
                raise TransportError(
                    "Cannot connect - missing user context (user_id and role required)"
                )
            self._token = token
            self.user_id, self.user_role = user_id, role

        logger.info(
            "Starting polling connection",
            extra={"user_id": user_id, "transport_role": role},
        )
        try:
            self._authenticate()
        except (httpx.HTTPError, TransportError) as e:
            logger.error(f"Relay authentication failed: {e}", extra={"user_id": user_id})
            self._schedule_reconnect()
            return

        self._start_polling()
        logger.info("Polling connection established", extra={"user_id": user_id})

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._token}"}

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
            self._owns_client = True
        return self._client

    def _authenticate(self) -> None:
        response = self._http().post(
            f"{self.base_url}/authenticate",
            json={"userId": self.user_id, "userRole": self.user_role},
            headers=self._headers(),
        )
        if not response.is_success:
            self._authenticated = False
            raise TransportError(f"Relay rejected authentication ({response.status_code})")
        self._authenticated = True
        self._reconnect_attempts = 0
        logger.info("Authenticated with relay", extra={"user_id": self.user_id})

    def _schedule_reconnect(self) -> None:
        with self._state_lock:
            if self._reconnect_attempts >= self.max_reconnect_attempts:
                logger.error("Max reconnection attempts reached")
                return
            delay = min(
                RECONNECT_BASE_DELAY_SECONDS * (2**self._reconnect_attempts),
                RECONNECT_MAX_DELAY_SECONDS,
            )
            self._reconnect_attempts += 1
            logger.info(
                f"Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempts})"
            )
            self._reconnect_timer = threading.Timer(delay, self._reconnect)
            self._reconnect_timer.daemon = True
            self._reconnect_timer.start()

    def _reconnect(self) -> None:
        if self._token:
            self.connect(self._token, self.user_id, self.user_role)

    def _start_polling(self) -> None:
        with self._state_lock:
            self._stop_poll_thread()
            self._poll_stop.clear()
            self._polling = True
            self.last_event_time = now_ms()
            self._poll_thread = threading.Thread(
                target=self._poll_loop, name=f"relay-poll-{self.user_id}", daemon=True
            )
            self._poll_thread.start()

    def _poll_loop(self) -> None:
        while not self._poll_stop.wait(self.poll_interval):
            self.poll_once()

    def poll_once(self) -> int:
        """
        Fetch and dispatch new events once.

        :return: Number of events received
        :rtype: int
        """
        if not self._authenticated or not self.user_id:
            return 0

        try:
            response = self._http().get(
                f"{self.base_url}/poll",
                params={"userId": self.user_id, "since": self.last_event_time},
                headers=self._headers(),
            )
            if response.status_code == 401:
                logger.info("Relay token expired, re-authenticating")
                self._authenticate()
                return 0
            response.raise_for_status()
            events = response.json()
        except (httpx.HTTPError, TransportError, ValueError) as e:
            if self._poll_failures % POLL_ERROR_LOG_EVERY == 0:
                logger.warning(f"Polling error (will retry): {e}")
            self._poll_failures += 1
            return 0

        if events:
            logger.debug(f"Received {len(events)} new events")
        for event in events:
            event_type = event.get("eventType")
            if event_type:
                self._dispatch(event_type, event.get("data"))
            timestamp = event.get("timestamp") or 0
            if timestamp > self.last_event_time:
                self.last_event_time = timestamp
        return len(events)

    # ------------------------------------------------------------------ #
    # Emission
    # ------------------------------------------------------------------ #
    def emit(self, event: str, payload: Any) -> bool:
        if not self._authenticated or not self.user_id:
            logger.warning(
                f"Cannot emit {event} - not authenticated", extra={"event_type": event}
            )
            return False

        try:
            response = self._http().post(
                f"{self.base_url}/emit",
                json={"userId": self.user_id, "eventType": event, "data": payload},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Error emitting {event}: {e}", extra={"event_type": event})
            return False

        if not response.is_success:
            logger.error(
                f"Relay refused {event} ({response.status_code})",
                extra={"event_type": event},
            )
            return False
        self._stats["events_emitted"] += 1
        logger.debug(f"Emitted {event}", extra={"event_type": event})
        return True

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #
    def _stop_poll_thread(self) -> None:
        self._poll_stop.set()
        thread = self._poll_thread
        self._poll_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval + 1.0)

    def disconnect(self) -> None:
        with self._state_lock:
            if self._reconnect_timer is not None:
                self._reconnect_timer.cancel()
                self._reconnect_timer = None
            self._stop_poll_thread()
            was_polling = self._polling
            self._polling = False
            self._authenticated = False
        if was_polling:
            logger.info("Polling transport disconnected", extra={"user_id": self.user_id or "-"})

    def reset(self) -> None:
        """Disconnect and forget credentials, user context and listeners."""
        self.disconnect()
        self._clear_listeners()
        self._token = None
        self.user_id = None
        self.user_role = None
        self._reconnect_attempts = 0
        self._poll_failures = 0
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def is_connected(self) -> bool:
        return self._polling and self._authenticated

    def is_mock_mode(self) -> bool:
        return False
