"""
Tests for recipient routing and the relay event store.
"""

import time

import pytest

from src.signaling import EventStore, route_event
from src.signaling.types import CallEventTypes


class TestRouteEvent:
    def test_initiate_call_goes_to_callee_as_incoming(self):
        data = {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"}
        assert route_event("patient-42", CallEventTypes.INITIATE_CALL, data) == [
            ("doctor-7", CallEventTypes.INCOMING_CALL)
        ]

    def test_initiate_call_to_self_has_no_recipients(self):
        data = {"callerId": "patient-42", "calleeId": "patient-42"}
        assert route_event("patient-42", CallEventTypes.INITIATE_CALL, data) == []

    @pytest.mark.parametrize("event", [CallEventTypes.CALL_RESPONSE, CallEventTypes.CALL_ENDED])
    def test_responses_go_to_both_parties_except_sender(self, event):
        data = {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"}

        assert route_event("doctor-7", event, data) == [("patient-42", event)]
        assert route_event("telecall-service", event, data) == [
            ("patient-42", event),
            ("doctor-7", event),
        ]

    def test_missing_participant_is_skipped(self):
        data = {"callId": "c1", "calleeId": "doctor-7"}
        assert route_event("svc", CallEventTypes.CALL_ENDED, data) == [
            ("doctor-7", CallEventTypes.CALL_ENDED)
        ]

    def test_other_events_and_bad_payloads_have_no_recipients(self):
        assert route_event("u", "update-status", {"status": "busy"}) == []
        assert route_event("u", CallEventTypes.CALL_ENDED, "c1") == []


class TestEventStore:
    def test_add_event_routes_to_recipient_queue(self):
        store = EventStore()
        data = {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"}

        event_id = store.add_event("patient-42", CallEventTypes.INITIATE_CALL, data)

        assert event_id.startswith("event_")
        assert store.get_events("patient-42") == []
        events = store.get_events("doctor-7")
        assert len(events) == 1
        assert events[0]["id"] == event_id
        assert events[0]["eventType"] == CallEventTypes.INCOMING_CALL
        assert events[0]["data"] == data
        assert events[0]["from"] == "patient-42"
        assert events[0]["userId"] == "doctor-7"

    def test_get_events_since_is_strict(self):
        store = EventStore()
        data = {"callId": "c1", "callerId": "patient-42", "calleeId": "doctor-7"}
        store.add_event("patient-42", CallEventTypes.INITIATE_CALL, data)
        timestamp = store.get_events("doctor-7")[0]["timestamp"]

        assert store.get_events("doctor-7", since=timestamp) == []
        assert len(store.get_events("doctor-7", since=timestamp - 1)) == 1

    def test_get_events_returns_copies(self):
        store = EventStore()
        store.add_event("a", CallEventTypes.CALL_ENDED, {"callerId": "a", "calleeId": "b"})
        store.get_events("b")[0]["eventType"] = "tampered"
        assert store.get_events("b")[0]["eventType"] == CallEventTypes.CALL_ENDED

    def test_unrouted_events_are_counted(self):
        store = EventStore()
        store.add_event("u", "update-status", {"status": "busy"})
        stats = store.get_stats()
        assert stats["events_received"] == 1
        assert stats["events_unrouted"] == 1
        assert stats["queued_events"] == 0

    def test_clear_old_events(self, monkeypatch):
        store = EventStore()
        data = {"callerId": "a", "calleeId": "b"}
        store.add_event("a", CallEventTypes.CALL_ENDED, data)

        assert store.clear_old_events(max_age_seconds=3600) == 0

        later = time.time() + 7200
        monkeypatch.setattr("src.signaling.event_store.time.time", lambda: later)
        assert store.clear_old_events(max_age_seconds=3600) == 1
        assert store.get_events("b") == []
        assert store.get_stats()["users"] == 0
