"""
Call Coordinator
================

Authoritative in-memory view of the calls a process takes part in, the
forward-only call state machine, and lifecycle notifications to UI subscribers.

The coordinator is built by the application's composition root and handed to
consumers; nothing here is a module-level singleton.
"""

from __future__ import annotations

import threading
from collections import OrderedDict, defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from utils.ml_logging import get_logger, set_span_correlation_attributes

from .bus import CallEventBus
from .types import (
    Call,
    CallEventTypes,
    CallRequest,
    CallResponse,
    CallStatus,
    CallTransport,
    call_ended_payload,
    can_transition,
    generate_call_id,
)

logger = get_logger("signaling.coordinator")
tracer = trace.get_tracer(__name__)

DEFAULT_PURGE_DELAY_SECONDS = 1.0
DEFAULT_RING_TIMEOUT_SECONDS = 30.0
DEFAULT_PURGED_HISTORY_SIZE = 1024

_RING_TIMER = "ring"
_PURGE_TIMER = "purge"


class CallCoordinator:
    """
    Owns the active-call map and drives each call through
    ``ringing -> accepted | rejected | ended`` and ``accepted -> ended``.

    Local actions emit on the transport and notify local subscribers; inbound
    transport events update the map and notify subscribers. Each lifecycle
    notification reaches a subscriber at most once per call, so a transport
    that echoes our own events (the loopback) does not double-fire.
    """

    def __init__(
        self,
        transport: CallTransport,
        *,
        purge_delay_seconds: float = DEFAULT_PURGE_DELAY_SECONDS,
        ring_timeout_seconds: float = DEFAULT_RING_TIMEOUT_SECONDS,
        bus: Optional[CallEventBus] = None,
        purged_history_size: int = DEFAULT_PURGED_HISTORY_SIZE,
    ):
        self.transport = transport
        self.bus = bus or CallEventBus()
        self.purge_delay_seconds = purge_delay_seconds
        self.ring_timeout_seconds = ring_timeout_seconds

        self._active_calls: Dict[str, Call] = {}
        self._notified: Dict[str, Set[str]] = defaultdict(set)
        # ids of purged calls; late incoming-call deliveries for them are dropped
        self._purged: "OrderedDict[str, None]" = OrderedDict()
        self._purged_history_size = purged_history_size
        self._timers: Dict[Tuple[str, str], threading.Timer] = {}
        self._lock = threading.RLock()
        self._closed = False

        self._stats = {
            "calls_initiated": 0,
            "calls_received": 0,
            "calls_accepted": 0,
            "calls_rejected": 0,
            "calls_ended": 0,
            "calls_expired": 0,
            "unknown_call_ids": 0,
            "invalid_transitions": 0,
            "duplicates_suppressed": 0,
        }

        self._transport_handlers: List[Tuple[str, Callable[[Any], None]]] = [
            (CallEventTypes.INCOMING_CALL, self._handle_incoming_call),
            (CallEventTypes.CALL_RESPONSE, self._handle_call_response),
            (CallEventTypes.CALL_ENDED, self._handle_call_ended),
        ]
        for event, handler in self._transport_handlers:
            self.transport.on(event, handler)

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #
    def on_incoming_call(self, callback: Callable[[Call], None]) -> None:
        self.bus.subscribe(CallEventTypes.INCOMING_CALL, callback)

    def off_incoming_call(self, callback: Optional[Callable[[Call], None]] = None) -> None:
        self.bus.unsubscribe(CallEventTypes.INCOMING_CALL, callback)

    def on_call_response(self, callback: Callable[[CallResponse], None]) -> None:
        self.bus.subscribe(CallEventTypes.CALL_RESPONSE, callback)

    def off_call_response(
        self, callback: Optional[Callable[[CallResponse], None]] = None
    ) -> None:
        self.bus.unsubscribe(CallEventTypes.CALL_RESPONSE, callback)

    def on_call_ended(self, callback: Callable[[str], None]) -> None:
        self.bus.subscribe(CallEventTypes.CALL_ENDED, callback)

    def off_call_ended(self, callback: Optional[Callable[[str], None]] = None) -> None:
        self.bus.unsubscribe(CallEventTypes.CALL_ENDED, callback)

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #
    def initiate_call(
        self,
        data: Union[CallRequest, Mapping[str, Any]],
        caller_id: str,
        caller_name: str,
    ) -> Call:
        """
        Create a ringing call and announce it on the transport.

        Returns immediately without waiting for the callee. Two initiations
        with the same arguments produce two independent calls.

        :param data: Callee id/name, appointment id and media channel name
        :param caller_id: Identifier of the calling party
        :param caller_name: Display name of the calling party
        :return: Snapshot of the new call record
        :rtype: Call
        """
        request = data if isinstance(data, CallRequest) else CallRequest.from_mapping(data)
        call = Call(
            call_id=generate_call_id(caller_id, request.callee_id),
            caller_id=caller_id,
            caller_name=caller_name,
            callee_id=request.callee_id,
            callee_name=request.callee_name,
            appointment_id=request.appointment_id,
            channel_name=request.channel_name,
        )

        with tracer.start_as_current_span(
            "call_coordinator.initiate_call",
            kind=SpanKind.INTERNAL,
            attributes={"call.id": call.call_id, "call.channel": call.channel_name},
        ):
            set_span_correlation_attributes(call_id=call.call_id, user_id=caller_id)
            with self._lock:
                self._active_calls[call.call_id] = call
                self._stats["calls_initiated"] += 1
                snapshot = call.snapshot()

            self._arm_ring_timeout(call.call_id)
            logger.info(
                f"Initiating call {caller_id} -> {request.callee_id}",
                extra={"call_id": call.call_id},
            )
            self.transport.emit(CallEventTypes.INITIATE_CALL, call.to_payload())

        return snapshot

    def accept_call(self, call_id: str, user_id: str) -> None:
        with tracer.start_as_current_span(
            "call_coordinator.accept_call",
            kind=SpanKind.INTERNAL,
            attributes={"call.id": call_id, "user.id": user_id or ""},
        ):
            updated = self._transition(
                call_id, CallStatus.ACCEPTED, operation="accept", counter="calls_accepted"
            )
            if updated is None:
                return

            self._cancel_timer(call_id, _RING_TIMER)
            logger.info(f"Call accepted by {user_id}", extra={"call_id": call_id})

            response = CallResponse(
                call_id=call_id,
                accepted=True,
                caller_id=updated.caller_id,
                callee_id=updated.callee_id,
                appointment_id=updated.appointment_id,
            )
            self.transport.emit(CallEventTypes.CALL_RESPONSE, response.to_payload())
            self._notify(call_id, CallEventTypes.CALL_RESPONSE, response)

    def reject_call(self, call_id: str, user_id: str) -> None:
        with tracer.start_as_current_span(
            "call_coordinator.reject_call",
            kind=SpanKind.INTERNAL,
            attributes={"call.id": call_id, "user.id": user_id or ""},
        ):
            self._reject(call_id, reason="rejected", rejected_by=user_id)

    def end_call(self, call_id: str, ended_by: Optional[str] = None) -> None:
        with tracer.start_as_current_span(
            "call_coordinator.end_call",
            kind=SpanKind.INTERNAL,
            attributes={"call.id": call_id},
        ):
            updated = self._transition(
                call_id, CallStatus.ENDED, operation="end", counter="calls_ended"
            )
            if updated is None:
                return

            self._cancel_timer(call_id, _RING_TIMER)
            logger.info("Call ended", extra={"call_id": call_id})

            self.transport.emit(
                CallEventTypes.CALL_ENDED, call_ended_payload(updated, ended_by)
            )
            self._notify(call_id, CallEventTypes.CALL_ENDED, call_id)
            self._schedule_purge(call_id)

    def simulate_incoming_call(self, call: Union[Call, Mapping[str, Any]]) -> None:
        """Run the incoming-call path for a call that did not come over the wire."""
        payload = call.to_payload() if isinstance(call, Call) else dict(call)
        logger.info("Simulating incoming call", extra={"call_id": payload.get("callId", "-")})
        self._handle_incoming_call(payload)

    def _reject(self, call_id: str, reason: str, rejected_by: Optional[str]) -> bool:
        updated = self._transition(
            call_id, CallStatus.REJECTED, operation="reject", counter="calls_rejected"
        )
        if updated is None:
            return False

        self._cancel_timer(call_id, _RING_TIMER)
        logger.info(
            f"Call rejected ({reason}) by {rejected_by or 'system'}",
            extra={"call_id": call_id},
        )

        response = CallResponse(
            call_id=call_id,
            accepted=False,
            caller_id=updated.caller_id,
            callee_id=updated.callee_id,
            appointment_id=updated.appointment_id,
            reason=reason,
        )
        self.transport.emit(CallEventTypes.CALL_RESPONSE, response.to_payload())
        self._notify(call_id, CallEventTypes.CALL_RESPONSE, response)
        self._schedule_purge(call_id)
        return True

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def get_active_call(self, call_id: str) -> Optional[Call]:
        with self._lock:
            call = self._active_calls.get(call_id)
            return call.snapshot() if call else None

    def get_user_active_calls(self, user_id: str) -> List[Call]:
        with self._lock:
            return [c.snapshot() for c in self._active_calls.values() if c.involves(user_id)]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            active = len(self._active_calls)
            pending_timers = len(self._timers)
        return {
            **self._stats,
            "active_calls": active,
            "pending_timers": pending_timers,
            "bus": self.bus.get_stats(),
            "transport_mock_mode": self.transport.is_mock_mode(),
        }

    # ------------------------------------------------------------------ #
    # Inbound transport events
    # ------------------------------------------------------------------ #
    def _handle_incoming_call(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning(f"Ignoring malformed incoming-call payload: {payload!r}")
            return

        incoming = Call.from_payload(payload)
        created = False
        with self._lock:
            if incoming.call_id in self._purged:
                self._stats["duplicates_suppressed"] += 1
                logger.debug(
                    "Incoming-call for a purged call ignored",
                    extra={"call_id": incoming.call_id},
                )
                return
            call = self._active_calls.get(incoming.call_id)
            if call is None:
                call = incoming
                self._active_calls[call.call_id] = call
                self._stats["calls_received"] += 1
                created = True
            status = call.status
            snapshot = call.snapshot()
            if status != CallStatus.RINGING:
                self._stats["duplicates_suppressed"] += 1

        if status != CallStatus.RINGING:
            logger.debug(
                f"Incoming-call for a {status.value} call ignored",
                extra={"call_id": call.call_id},
            )
            return

        if created:
            self._arm_ring_timeout(call.call_id)

        logger.info(
            f"Incoming call from {snapshot.caller_id} to {snapshot.callee_id}",
            extra={"call_id": snapshot.call_id},
        )
        self._notify(snapshot.call_id, CallEventTypes.INCOMING_CALL, snapshot)

    def _handle_call_response(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning(f"Ignoring malformed call-response payload: {payload!r}")
            return

        response = CallResponse.from_payload(payload)
        target = CallStatus.ACCEPTED if response.accepted else CallStatus.REJECTED
        updated = self._transition(response.call_id, target, operation="response", remote=True)

        if updated is not None:
            self._cancel_timer(response.call_id, _RING_TIMER)
            if target == CallStatus.REJECTED:
                self._schedule_purge(response.call_id)
        elif self._current_status(response.call_id) != target:
            return

        self._notify(response.call_id, CallEventTypes.CALL_RESPONSE, response)

    def _handle_call_ended(self, payload: Any) -> None:
        if isinstance(payload, str):
            call_id = payload
        elif isinstance(payload, Mapping):
            call_id = payload.get("callId") or payload.get("call_id")
        else:
            call_id = None
        if not call_id:
            logger.warning(f"Ignoring malformed call-ended payload: {payload!r}")
            return

        updated = self._transition(call_id, CallStatus.ENDED, operation="ended", remote=True)
        if updated is not None:
            self._cancel_timer(call_id, _RING_TIMER)
            self._schedule_purge(call_id)
        elif self._current_status(call_id) != CallStatus.ENDED:
            return

        self._notify(call_id, CallEventTypes.CALL_ENDED, call_id)

    # ------------------------------------------------------------------ #
    # State machine helpers
    # ------------------------------------------------------------------ #
    def _transition(
        self,
        call_id: str,
        target: CallStatus,
        *,
        operation: str,
        remote: bool = False,
        counter: Optional[str] = None,
    ) -> Optional[Call]:
        """
        Move ``call_id`` to ``target`` if the state machine allows it.
        ``counter`` names the stat bumped when the move happens.

        Unknown ids and disallowed transitions return None and change nothing.
        Local misses are logged as warnings; misses triggered by inbound events
        are expected (echoes, late deliveries) and only logged at debug.
        """
        with self._lock:
            call = self._active_calls.get(call_id)
            if call is None:
                if remote:
                    logger.debug(f"{operation}: unknown call id", extra={"call_id": call_id})
                else:
                    self._stats["unknown_call_ids"] += 1
                    logger.warning(f"{operation}: unknown call id", extra={"call_id": call_id})
                return None

            if not can_transition(call.status, target):
                if not remote:
                    self._stats["invalid_transitions"] += 1
                    logger.warning(
                        f"{operation}: cannot move {call.status.value} -> {target.value}",
                        extra={"call_id": call_id},
                    )
                return None

            now = datetime.now(timezone.utc)
            call.status = target
            if target == CallStatus.ACCEPTED:
                call.start_time = now
            elif target.is_terminal:
                call.end_time = now
            if counter:
                self._stats[counter] += 1
            return call.snapshot()

    def _current_status(self, call_id: str) -> Optional[CallStatus]:
        with self._lock:
            call = self._active_calls.get(call_id)
            return call.status if call else None

    def _notify(self, call_id: str, event: str, payload: Any) -> None:
        with self._lock:
            seen = self._notified[call_id]
            if event in seen:
                self._stats["duplicates_suppressed"] += 1
                logger.debug(f"Suppressed duplicate {event}", extra={"call_id": call_id})
                return
            seen.add(event)
        self.bus.publish(event, payload)

    # ------------------------------------------------------------------ #
    # Timers
    # ------------------------------------------------------------------ #
    def _arm_ring_timeout(self, call_id: str) -> None:
        if self.ring_timeout_seconds and self.ring_timeout_seconds > 0:
            self._schedule(call_id, _RING_TIMER, self.ring_timeout_seconds, self._expire_ringing)

    def _expire_ringing(self, call_id: str) -> None:
        if self._current_status(call_id) != CallStatus.RINGING:
            return
        logger.info("Ringing call timed out", extra={"call_id": call_id})
        if self._reject(call_id, reason="timeout", rejected_by=None):
            with self._lock:
                self._stats["calls_expired"] += 1

    def _schedule_purge(self, call_id: str) -> None:
        self._schedule(call_id, _PURGE_TIMER, self.purge_delay_seconds, self._purge)

    def _purge(self, call_id: str) -> None:
        with self._lock:
            self._active_calls.pop(call_id, None)
            self._notified.pop(call_id, None)
            self._purged[call_id] = None
            while len(self._purged) > self._purged_history_size:
                self._purged.popitem(last=False)
        self._cancel_timer(call_id, _RING_TIMER)
        logger.debug("Purged call", extra={"call_id": call_id})

    def _schedule(
        self, call_id: str, kind: str, delay: float, action: Callable[[str], None]
    ) -> None:
        def _fire():
            with self._lock:
                if self._timers.get((call_id, kind)) is timer:
                    del self._timers[(call_id, kind)]
            try:
                action(call_id)
            except Exception as e:
                logger.error(f"{kind} timer failed: {e}", extra={"call_id": call_id})

        with self._lock:
            if self._closed:
                return
            existing = self._timers.pop((call_id, kind), None)
            if existing:
                existing.cancel()
            timer = threading.Timer(max(delay, 0.0), _fire)
            timer.daemon = True
            self._timers[(call_id, kind)] = timer
        timer.start()

    def _cancel_timer(self, call_id: str, kind: str) -> None:
        with self._lock:
            timer = self._timers.pop((call_id, kind), None)
        if timer:
            timer.cancel()

    def close(self) -> None:
        """Cancel pending timers and stop listening on the transport."""
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        for event, handler in self._transport_handlers:
            self.transport.off(event, handler)
        logger.info("Call coordinator closed")
