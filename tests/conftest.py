import os
import threading
import time

import pytest

# Keep telemetry exporters out of unit tests.
os.environ.setdefault("DISABLE_CLOUD_TELEMETRY", "true")
os.environ.setdefault("SIGNALING_TRANSPORT", "loopback")

from src.signaling import CallCoordinator, InMemoryLoopbackTransport


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until it is truthy or ``timeout`` elapses."""

    def _wait(predicate, timeout=2.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return bool(predicate())

    return _wait


@pytest.fixture
def loopback():
    transport = InMemoryLoopbackTransport(heartbeat_interval=0)
    transport.connect("token", user_id="svc", role="service")
    yield transport
    transport.disconnect()


@pytest.fixture
def make_coordinator(loopback):
    created = []

    def _make(transport=None, purge_delay_seconds=0.2, ring_timeout_seconds=0):
        coordinator = CallCoordinator(
            transport or loopback,
            purge_delay_seconds=purge_delay_seconds,
            ring_timeout_seconds=ring_timeout_seconds,
        )
        created.append(coordinator)
        return coordinator

    yield _make
    for coordinator in created:
        coordinator.close()


@pytest.fixture
def call_request():
    return {
        "callee_id": "doctor-7",
        "callee_name": "Dr. Rivera",
        "appointment_id": "appt-1001",
        "channel_name": "appointment_appt-1001",
    }


class Recorder:
    """Callable that records every payload it receives."""

    def __init__(self, name="recorder"):
        self.__name__ = name
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, payload):
        with self._lock:
            self.calls.append(payload)

    @property
    def count(self):
        return len(self.calls)


@pytest.fixture
def recorder():
    return Recorder
