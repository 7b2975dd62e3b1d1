"""
API V1 schemas.
"""

from .call import (
    CallActionRequest,
    CallEndRequest,
    CallInitiateRequest,
    CallListResponse,
    CallSnapshotResponse,
)
from .event import (
    AuthenticateRequest,
    AuthenticateResponse,
    EmitRequest,
    EmitResponse,
    RelayEvent,
)

__all__ = [
    "AuthenticateRequest",
    "AuthenticateResponse",
    "CallActionRequest",
    "CallEndRequest",
    "CallInitiateRequest",
    "CallListResponse",
    "CallSnapshotResponse",
    "EmitRequest",
    "EmitResponse",
    "RelayEvent",
]
