"""
Tests for the HTTP polling transport against a mocked relay.
"""

import json

import httpx
import pytest

from src.signaling.polling import PollingCallTransport
from src.signaling.types import CallEventTypes, TransportError

BASE_URL = "http://relay.test/api/v1/events"


class FakeRelay:
    """httpx.MockTransport handler emulating the relay endpoints."""

    def __init__(self, auth_status=200, emit_status=200):
        self.auth_status = auth_status
        self.emit_status = emit_status
        self.poll_queue = []
        self.poll_status = []
        self.poll_error = None
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/authenticate"):
            return httpx.Response(self.auth_status, json={"success": self.auth_status == 200})
        if path.endswith("/emit"):
            return httpx.Response(
                self.emit_status, json={"success": True, "eventId": "event_1_000000001", "timestamp": 1}
            )
        if path.endswith("/poll"):
            if self.poll_error is not None:
                raise self.poll_error(request)
            if self.poll_status:
                return httpx.Response(self.poll_status.pop(0), json={"detail": "expired"})
            events, self.poll_queue = self.poll_queue, []
            return httpx.Response(200, json=events)
        return httpx.Response(404)

    def calls_to(self, suffix):
        return [r for r in self.requests if r.url.path.endswith(suffix)]


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def make_transport(relay):
    created = []

    def _make(**kwargs):
        transport = PollingCallTransport(
            BASE_URL,
            poll_interval=kwargs.pop("poll_interval", 60),
            client=httpx.Client(transport=httpx.MockTransport(relay)),
            **kwargs,
        )
        created.append(transport)
        return transport

    yield _make
    for transport in created:
        transport.disconnect()


class TestConnect:
    def test_missing_user_context_raises(self, make_transport, relay):
        transport = make_transport()
        with pytest.raises(TransportError):
            transport.connect("token")
        assert relay.requests == []

    def test_connect_authenticates_and_starts_polling(self, make_transport, relay):
        transport = make_transport()
        transport.connect("jwt-token", user_id="doctor-7", role="doctor")

        assert transport.is_connected()
        assert not transport.is_mock_mode()
        auth = relay.calls_to("/authenticate")[0]
        assert auth.headers["Authorization"] == "Bearer jwt-token"
        assert json.loads(auth.content) == {"userId": "doctor-7", "userRole": "doctor"}

    def test_second_connect_is_a_no_op(self, make_transport, relay):
        transport = make_transport()
        transport.connect("jwt-token", user_id="doctor-7", role="doctor")
        transport.connect("jwt-token", user_id="doctor-7", role="doctor")
        assert len(relay.calls_to("/authenticate")) == 1

    def test_failed_authentication_schedules_reconnect(self, make_transport, relay):
        relay.auth_status = 401
        transport = make_transport()

        transport.connect("bad-token", user_id="doctor-7", role="doctor")

        assert not transport.is_connected()
        assert transport._reconnect_attempts == 1
        assert transport._reconnect_timer is not None
        transport.disconnect()
        assert transport._reconnect_timer is None

    def test_reconnect_gives_up_after_max_attempts(self, make_transport, relay):
        relay.auth_status = 500
        transport = make_transport(max_reconnect_attempts=0)

        transport.connect("token", user_id="doctor-7", role="doctor")

        assert transport._reconnect_timer is None


class TestPolling:
    def test_poll_dispatches_events_and_advances_since(self, make_transport, relay, recorder):
        transport = make_transport()
        incoming, ended = recorder(), recorder()
        transport.on(CallEventTypes.INCOMING_CALL, incoming)
        transport.on(CallEventTypes.CALL_ENDED, ended)
        transport.connect("token", user_id="doctor-7", role="doctor")
        transport.last_event_time = 1000

        relay.poll_queue = [
            {"id": "e1", "eventType": "incoming-call", "data": {"callId": "c1"}, "timestamp": 1500, "userId": "doctor-7"},
            {"id": "e2", "eventType": "call-ended", "data": {"callId": "c1"}, "timestamp": 1600, "userId": "doctor-7"},
        ]

        assert transport.poll_once() == 2
        assert incoming.calls == [{"callId": "c1"}]
        assert ended.calls == [{"callId": "c1"}]
        assert transport.last_event_time == 1600

        transport.poll_once()
        last_poll = relay.calls_to("/poll")[-1]
        assert last_poll.url.params["since"] == "1600"
        assert last_poll.url.params["userId"] == "doctor-7"

    def test_unauthorized_poll_reauthenticates(self, make_transport, relay):
        transport = make_transport()
        transport.connect("token", user_id="doctor-7", role="doctor")
        relay.poll_status = [401]

        assert transport.poll_once() == 0
        assert len(relay.calls_to("/authenticate")) == 2
        assert transport.is_authenticated

    def test_poll_errors_are_swallowed_and_counted(self, make_transport, relay):
        transport = make_transport()
        transport.connect("token", user_id="doctor-7", role="doctor")
        relay.poll_error = lambda request: httpx.ConnectError("relay down", request=request)

        assert transport.poll_once() == 0
        assert transport.poll_once() == 0
        assert transport._poll_failures == 2

    def test_poll_before_authentication_does_nothing(self, make_transport, relay):
        transport = make_transport()
        assert transport.poll_once() == 0
        assert relay.requests == []

    def test_background_thread_polls(self, make_transport, relay, recorder, wait_until):
        transport = make_transport(poll_interval=0.02)
        incoming = recorder()
        transport.on(CallEventTypes.INCOMING_CALL, incoming)
        relay.poll_queue = [
            {"id": "e1", "eventType": "incoming-call", "data": {"callId": "c9"}, "timestamp": 10**13, "userId": "doctor-7"},
        ]

        transport.connect("token", user_id="doctor-7", role="doctor")

        assert wait_until(lambda: incoming.count == 1)


class TestEmit:
    def test_emit_requires_authentication(self, make_transport, relay):
        transport = make_transport()
        assert transport.emit(CallEventTypes.CALL_ENDED, {"callId": "c1"}) is False
        assert relay.calls_to("/emit") == []

    def test_emit_posts_event(self, make_transport, relay):
        transport = make_transport()
        transport.connect("token", user_id="patient-42", role="patient")

        assert transport.emit(CallEventTypes.INITIATE_CALL, {"callId": "c1", "calleeId": "doctor-7"}) is True

        body = json.loads(relay.calls_to("/emit")[0].content)
        assert body == {
            "userId": "patient-42",
            "eventType": "initiate-call",
            "data": {"callId": "c1", "calleeId": "doctor-7"},
        }

    def test_emit_reports_relay_failure(self, make_transport, relay):
        relay.emit_status = 500
        transport = make_transport()
        transport.connect("token", user_id="patient-42", role="patient")

        assert transport.emit(CallEventTypes.CALL_ENDED, {"callId": "c1"}) is False


def test_reset_forgets_everything(make_transport, recorder):
    transport = make_transport()
    transport.on(CallEventTypes.INCOMING_CALL, recorder())
    transport.connect("token", user_id="doctor-7", role="doctor")

    transport.reset()

    assert not transport.is_connected()
    assert transport.user_id is None
    assert transport.listener_count(CallEventTypes.INCOMING_CALL) == 0
    with pytest.raises(TransportError):
        transport.connect("token")
