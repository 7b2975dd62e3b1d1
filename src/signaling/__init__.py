"""
Call signaling: transports, the call coordinator and the event relay store.
"""

from .bus import CallEventBus
from .coordinator import CallCoordinator
from .event_store import EventStore
from .routing import route_event
from .transport import BaseCallTransport, InMemoryLoopbackTransport
from .types import (
    Call,
    CallEventTypes,
    CallRequest,
    CallResponse,
    CallStatus,
    CallTransport,
    TransportError,
)

__all__ = [
    "BaseCallTransport",
    "Call",
    "CallCoordinator",
    "CallEventBus",
    "CallEventTypes",
    "CallRequest",
    "CallResponse",
    "CallStatus",
    "CallTransport",
    "EventStore",
    "InMemoryLoopbackTransport",
    "TransportError",
    "route_event",
]
