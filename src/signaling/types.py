"""
Signaling Types
===============

Domain types shared by the call coordinator, the transports and the event relay.
Wire payloads keep camelCase keys so browser clients and the relay agree on one
format.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable


class TransportError(Exception):
    """Raised when a transport cannot be set up (e.g. missing user context)."""


class CallStatus(str, Enum):
    """Lifecycle states of a call."""

    RINGING = "ringing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ENDED = "ended"

    @property
    def is_terminal(self) -> bool:
        return self in (CallStatus.REJECTED, CallStatus.ENDED)


# Forward-only state machine. Terminal states have no outgoing edges.
ALLOWED_TRANSITIONS: Dict[CallStatus, frozenset] = {
    CallStatus.RINGING: frozenset(
        {CallStatus.ACCEPTED, CallStatus.REJECTED, CallStatus.ENDED}
    ),
    CallStatus.ACCEPTED: frozenset({CallStatus.ENDED}),
    CallStatus.REJECTED: frozenset(),
    CallStatus.ENDED: frozenset(),
}


def can_transition(current: CallStatus, target: CallStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class CallEventTypes:
    """Event names exchanged over a call transport."""

    INITIATE_CALL = "initiate-call"
    INCOMING_CALL = "incoming-call"
    CALL_RESPONSE = "call-response"
    CALL_ENDED = "call-ended"
    HEARTBEAT = "heartbeat"


TransportCallback = Callable[[Any], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_call_id(caller_id: str, callee_id: str) -> str:
    """
    Build a call id from the current millisecond, both participants and a
    random suffix. The suffix keeps ids distinct for identical initiations
    landing in the same millisecond.
    """
    return f"call_{now_ms()}_{caller_id}_{callee_id}_{uuid.uuid4().hex[:8]}"


def _pick(data: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass
class CallRequest:
    """What the initiator supplies about the callee side of a call."""

    callee_id: str
    callee_name: str
    appointment_id: str
    channel_name: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CallRequest":
        return cls(
            callee_id=_pick(data, "callee_id", "calleeId"),
            callee_name=_pick(data, "callee_name", "calleeName", ""),
            appointment_id=_pick(data, "appointment_id", "appointmentId", ""),
            channel_name=_pick(data, "channel_name", "channelName", ""),
        )


@dataclass
class Call:
    """Signaling-level record of one call between two parties."""

    call_id: str
    caller_id: str
    caller_name: str
    callee_id: str
    callee_name: str
    appointment_id: str
    channel_name: str
    status: CallStatus = CallStatus.RINGING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.callee_id)

    def snapshot(self) -> "Call":
        return replace(self)

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation used for initiate-call / incoming-call events."""
        payload = {
            "callId": self.call_id,
            "callerId": self.caller_id,
            "callerName": self.caller_name,
            "calleeId": self.callee_id,
            "calleeName": self.callee_name,
            "appointmentId": self.appointment_id,
            "channelName": self.channel_name,
            "status": self.status.value,
        }
        if self.start_time is not None:
            payload["startTime"] = self.start_time.isoformat()
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Call":
        """
        Build a ringing record from an inbound wire payload.

        Missing call ids are synthesised the same way an initiator would, so a
        relay that strips the id still yields a usable record.
        """
        caller_id = str(_pick(payload, "caller_id", "callerId", ""))
        callee_id = str(_pick(payload, "callee_id", "calleeId", ""))
        call_id = _pick(payload, "call_id", "callId") or generate_call_id(
            caller_id, callee_id
        )
        return cls(
            call_id=call_id,
            caller_id=caller_id,
            caller_name=_pick(payload, "caller_name", "callerName", ""),
            callee_id=callee_id,
            callee_name=_pick(payload, "callee_name", "calleeName", ""),
            appointment_id=_pick(payload, "appointment_id", "appointmentId", ""),
            channel_name=_pick(payload, "channel_name", "channelName", ""),
            status=CallStatus.RINGING,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("start_time", "end_time", "created_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class CallResponse:
    """Outcome of a ringing call, delivered to the caller's UI."""

    call_id: str
    accepted: bool
    caller_id: str
    callee_id: str
    appointment_id: str
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "callId": self.call_id,
            "accepted": self.accepted,
            "callerId": self.caller_id,
            "calleeId": self.callee_id,
            "appointmentId": self.appointment_id,
            "reason": self.reason,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CallResponse":
        return cls(
            call_id=_pick(payload, "call_id", "callId", ""),
            accepted=bool(payload.get("accepted", False)),
            caller_id=_pick(payload, "caller_id", "callerId", ""),
            callee_id=_pick(payload, "callee_id", "calleeId", ""),
            appointment_id=_pick(payload, "appointment_id", "appointmentId", ""),
            reason=payload.get("reason"),
        )


def call_ended_payload(call: Call, ended_by: Optional[str] = None) -> Dict[str, Any]:
    return {
        "callId": call.call_id,
        "callerId": call.caller_id,
        "calleeId": call.callee_id,
        "endedBy": ended_by,
    }


@runtime_checkable
class CallTransport(Protocol):
    """Publish/subscribe surface the coordinator relies on."""

    def connect(
        self, token: str, user_id: Optional[str] = None, role: Optional[str] = None
    ) -> None:
        ...

    def disconnect(self) -> None:
        ...

    def on(self, event: str, callback: TransportCallback) -> None:
        ...

    def off(self, event: str, callback: Optional[TransportCallback] = None) -> None:
        ...

    def emit(self, event: str, payload: Any) -> bool:
        ...

    def is_connected(self) -> bool:
        ...

    def is_mock_mode(self) -> bool:
        ...
