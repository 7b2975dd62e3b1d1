"""
Tests for the Redis manager and the Redis pub/sub transport, using in-memory
fakes in place of a Redis server.
"""

import json
import time
from collections import defaultdict

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from src.redis import manager as redis_manager
from src.redis.manager import RedisManager
from src.signaling.redis_transport import RedisCallTransport
from src.signaling.types import CallEventTypes, CallStatus, TransportError


class _FakeRedis:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.published = []
        self.closed = False

    def ping(self) -> bool:
        return True

    def publish(self, channel: str, message: str) -> int:
        if self.failures:
            self.failures -= 1
            raise RedisConnectionError("connection reset")
        self.published.append((channel, message))
        return 1

    def pubsub(self, ignore_subscribe_messages: bool = False):
        return _FakePubSub()

    def close(self) -> None:
        self.closed = True


class _FakeWorker:
    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class _FakePubSub:
    def __init__(self) -> None:
        self.handlers = {}
        self.worker = None
        self.closed = False

    def subscribe(self, **handlers) -> None:
        self.handlers.update(handlers)

    def run_in_thread(self, sleep_time: float = 0.0, daemon: bool = False):
        self.worker = _FakeWorker()
        return self.worker

    def close(self) -> None:
        self.closed = True

    def deliver(self, channel: str, data) -> None:
        self.handlers[channel]({"type": "message", "channel": channel, "data": data})


class _FakeManager:
    """Stands in for RedisManager at the transport boundary."""

    def __init__(self, fail_channels=()) -> None:
        self.fail_channels = set(fail_channels)
        self.published = []
        self.last_pubsub = None

    def publish(self, channel: str, message: str) -> int:
        if channel in self.fail_channels:
            raise RedisError("publish failed")
        self.published.append((channel, json.loads(message)))
        return 1

    def pubsub(self):
        self.last_pubsub = _FakePubSub()
        return self.last_pubsub


class _FakeBroker:
    """Shared in-memory pub/sub: publishing hands the message to every subscriber synchronously."""

    def __init__(self) -> None:
        self.subscriptions = defaultdict(list)
        self.published = []

    def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        handlers = list(self.subscriptions.get(channel, ()))
        for handler in handlers:
            handler({"type": "message", "channel": channel, "data": message})
        return len(handlers)

    def pubsub(self):
        return _BrokerPubSub(self)


class _BrokerPubSub:
    def __init__(self, broker: _FakeBroker) -> None:
        self.broker = broker
        self.handlers = {}

    def subscribe(self, **handlers) -> None:
        for channel, handler in handlers.items():
            self.handlers[channel] = handler
            self.broker.subscriptions[channel].append(handler)

    def run_in_thread(self, sleep_time: float = 0.0, daemon: bool = False):
        return _FakeWorker()

    def close(self) -> None:
        for channel, handler in self.handlers.items():
            self.broker.subscriptions[channel].remove(handler)
        self.handlers = {}


@pytest.fixture
def broker():
    return _FakeBroker()


@pytest.fixture
def join(broker):
    """Connect a RedisCallTransport on the shared broker as ``user_id``."""
    transports = []

    def _join(user_id, role="patient", **kwargs):
        transport = RedisCallTransport(broker, **kwargs)
        transport.connect("token", user_id=user_id, role=role)
        transports.append(transport)
        return transport

    yield _join
    for transport in transports:
        transport.disconnect()


class TestRedisManager:
    def test_publish_retries_after_connection_error(self, monkeypatch):
        clients = [_FakeRedis(failures=1), _FakeRedis()]
        created = []

        def _factory(*args, **kwargs):
            client = clients[len(created)] if len(created) < len(clients) else clients[-1]
            created.append(kwargs)
            return client

        monkeypatch.setattr(redis_manager.redis, "Redis", _factory)

        mgr = RedisManager(host="cache.example.local", port=6380, access_key="dummy", ssl=True)
        receivers = mgr.publish("telecall:user:doctor-7", "{}")

        assert receivers == 1
        assert clients[1].published == [("telecall:user:doctor-7", "{}")]
        assert len(created) == 2
        assert created[0]["password"] == "dummy"
        assert created[0]["ssl"] is True

    def test_publish_gives_up_after_retries(self, monkeypatch):
        client = _FakeRedis(failures=10)
        monkeypatch.setattr(redis_manager.redis, "Redis", lambda *args, **kwargs: client)

        mgr = RedisManager(host="cache.example.local", port=6379, ssl=False)

        with pytest.raises(RedisConnectionError):
            mgr.publish("chan", "msg")

    def test_host_with_port_is_split(self, monkeypatch):
        monkeypatch.setattr(redis_manager.redis, "Redis", lambda *args, **kwargs: _FakeRedis())

        mgr = RedisManager(host="cache.example.local:6390", ssl=False)

        assert mgr.host == "cache.example.local"
        assert mgr.port == 6390
        assert mgr.is_connected is True

    def test_missing_host_raises(self, monkeypatch):
        monkeypatch.delenv("REDIS_HOST", raising=False)
        with pytest.raises(ValueError):
            RedisManager(host=None)


class TestRedisCallTransport:
    def test_connect_requires_user_id(self):
        transport = RedisCallTransport(_FakeManager())
        with pytest.raises(TransportError):
            transport.connect("token")

    def test_connect_subscribes_to_user_channel(self):
        manager = _FakeManager()
        transport = RedisCallTransport(manager, channel_prefix="tc")

        transport.connect("token", user_id="doctor-7", role="doctor")
        transport.connect("token", user_id="doctor-7", role="doctor")

        assert transport.is_connected()
        assert not transport.is_mock_mode()
        assert list(manager.last_pubsub.handlers) == ["tc:user:doctor-7"]

    def test_inbound_messages_are_dispatched(self, recorder):
        manager = _FakeManager()
        transport = RedisCallTransport(manager)
        incoming = recorder()
        transport.on(CallEventTypes.INCOMING_CALL, incoming)
        transport.connect("token", user_id="doctor-7")

        envelope = {"event": "incoming-call", "data": {"callId": "c1"}, "from": "patient-42", "timestamp": 1}
        manager.last_pubsub.deliver("telecall:user:doctor-7", json.dumps(envelope))
        manager.last_pubsub.deliver("telecall:user:doctor-7", "not json")
        manager.last_pubsub.deliver("telecall:user:doctor-7", json.dumps({"data": {}}))

        assert incoming.calls == [{"callId": "c1"}]

    def test_emit_routes_to_recipient_channels(self):
        manager = _FakeManager()
        transport = RedisCallTransport(manager)
        transport.connect("token", user_id="telecall-service")

        payload = {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7", "endedBy": None}
        assert transport.emit(CallEventTypes.CALL_ENDED, payload) is True

        channels = [channel for channel, _ in manager.published]
        assert channels == [
            "telecall:user:patient-42",
            "telecall:user:doctor-7",
            "telecall:observers",
        ]
        envelope = manager.published[0][1]
        assert envelope["event"] == CallEventTypes.CALL_ENDED
        assert envelope["data"] == payload
        assert envelope["from"] == "telecall-service"

    def test_emit_initiate_becomes_incoming_for_callee(self):
        manager = _FakeManager()
        transport = RedisCallTransport(manager)
        transport.connect("token", user_id="patient-42")

        transport.emit(CallEventTypes.INITIATE_CALL, {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"})

        assert [c for c, _ in manager.published] == ["telecall:user:doctor-7"]
        assert manager.published[0][1]["event"] == CallEventTypes.INCOMING_CALL

    def test_emit_partial_failure_still_succeeds(self):
        manager = _FakeManager(fail_channels={"telecall:user:patient-42"})
        transport = RedisCallTransport(manager)
        transport.connect("token", user_id="svc")

        ok = transport.emit(CallEventTypes.CALL_ENDED, {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"})

        assert ok is True
        assert [c for c, _ in manager.published] == ["telecall:user:doctor-7", "telecall:observers"]

    def test_emit_total_failure_and_no_recipients(self):
        manager = _FakeManager(fail_channels={"telecall:user:doctor-7"})
        transport = RedisCallTransport(manager)
        assert transport.emit(CallEventTypes.CALL_ENDED, {}) is False

        transport.connect("token", user_id="patient-42")
        assert transport.emit(CallEventTypes.CALL_ENDED, {"callerId": "patient-42", "calleeId": "doctor-7"}) is False
        assert transport.emit(CallEventTypes.HEARTBEAT, {}) is True

    def test_disconnect_stops_worker(self):
        manager = _FakeManager()
        transport = RedisCallTransport(manager)
        transport.connect("token", user_id="doctor-7")
        pubsub = manager.last_pubsub

        transport.disconnect()
        transport.disconnect()

        assert pubsub.worker.stopped
        assert pubsub.closed
        assert not transport.is_connected()

    def test_observer_subscribes_to_observer_channel(self):
        manager = _FakeManager()
        transport = RedisCallTransport(manager, observe_calls=True)

        transport.connect("token", user_id="telecall-service", role="service")

        assert list(manager.last_pubsub.handlers) == [
            "telecall:user:telecall-service",
            "telecall:observers",
        ]

    def test_own_envelopes_are_not_dispatched(self, recorder):
        manager = _FakeManager()
        transport = RedisCallTransport(manager, observe_calls=True)
        ended = recorder()
        transport.on(CallEventTypes.CALL_ENDED, ended)
        transport.connect("token", user_id="telecall-service")

        own = {"event": "call-ended", "data": {"callId": "c1"}, "from": "telecall-service", "timestamp": 1}
        other = {"event": "call-ended", "data": {"callId": "c2"}, "from": "doctor-7", "timestamp": 2}
        manager.last_pubsub.deliver("telecall:observers", json.dumps(own))
        manager.last_pubsub.deliver("telecall:observers", json.dumps(other))

        assert ended.calls == [{"callId": "c2"}]


class TestCallsOverRedis:
    def test_two_party_call(self, join, make_coordinator, call_request, recorder):
        caller = make_coordinator(join("patient-42", role="patient"))
        callee = make_coordinator(join("doctor-7", role="doctor"))
        caller_incoming, callee_incoming = recorder(), recorder()
        caller_response, callee_response = recorder(), recorder()
        caller_ended, callee_ended = recorder(), recorder()
        caller.on_incoming_call(caller_incoming)
        callee.on_incoming_call(callee_incoming)
        caller.on_call_response(caller_response)
        callee.on_call_response(callee_response)
        caller.on_call_ended(caller_ended)
        callee.on_call_ended(callee_ended)

        call = caller.initiate_call(call_request, "patient-42", "Alex")

        assert caller_incoming.count == 0
        assert callee_incoming.count == 1
        assert callee_incoming.calls[0].call_id == call.call_id
        assert callee.get_active_call(call.call_id).status == CallStatus.RINGING

        callee.accept_call(call.call_id, "doctor-7")

        assert caller.get_active_call(call.call_id).status == CallStatus.ACCEPTED
        assert callee.get_active_call(call.call_id).status == CallStatus.ACCEPTED
        assert caller_response.count == 1
        assert caller_response.calls[0].accepted is True
        assert callee_response.count == 1

        caller.end_call(call.call_id, ended_by="patient-42")

        assert caller_ended.calls == [call.call_id]
        assert callee_ended.calls == [call.call_id]
        assert caller.get_active_call(call.call_id).status == CallStatus.ENDED
        assert callee.get_active_call(call.call_id).status == CallStatus.ENDED

    def test_service_follows_calls_it_started(self, join, make_coordinator, call_request, recorder):
        service = make_coordinator(
            join("telecall-service", role="service", observe_calls=True),
            ring_timeout_seconds=0.2,
        )
        doctor = make_coordinator(join("doctor-7", role="doctor"))
        service_response, service_ended = recorder(), recorder()
        service.on_call_response(service_response)
        service.on_call_ended(service_ended)

        call = service.initiate_call(call_request, "patient-42", "Alex")
        doctor.accept_call(call.call_id, "doctor-7")

        assert service.get_active_call(call.call_id).status == CallStatus.ACCEPTED
        assert service_response.calls[0].accepted is True

        # the ring timer was cancelled by the remote accept
        time.sleep(0.3)
        assert service.get_active_call(call.call_id).status == CallStatus.ACCEPTED
        assert service.get_stats()["calls_expired"] == 0

        doctor.end_call(call.call_id, ended_by="doctor-7")

        assert service.get_active_call(call.call_id).status == CallStatus.ENDED
        assert service_ended.calls == [call.call_id]

    def test_service_end_reaches_both_parties(self, join, make_coordinator, call_request, recorder):
        service = make_coordinator(join("telecall-service", role="service", observe_calls=True))
        patient = make_coordinator(join("patient-42", role="patient"))
        doctor = make_coordinator(join("doctor-7", role="doctor"))
        patient_ended, doctor_ended, service_ended = recorder(), recorder(), recorder()
        patient.on_call_ended(patient_ended)
        doctor.on_call_ended(doctor_ended)
        service.on_call_ended(service_ended)

        call = service.initiate_call(call_request, "patient-42", "Alex")
        doctor.accept_call(call.call_id, "doctor-7")
        service.end_call(call.call_id, ended_by="patient-42")

        assert service_ended.calls == [call.call_id]
        assert doctor_ended.calls == [call.call_id]
        assert doctor.get_active_call(call.call_id).status == CallStatus.ENDED
        # the patient never saw the call ring, so the hang-up is ignored there
        assert patient_ended.count == 0
