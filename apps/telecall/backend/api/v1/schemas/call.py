"""
Call-related API schemas.

Pydantic schemas for call signaling requests and responses. Field aliases keep
the camelCase keys browser clients already use on the wire.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.signaling.types import Call


class CallInitiateRequest(BaseModel):
    """Request model for starting a call."""

    caller_id: str = Field(..., alias="callerId", min_length=1)
    caller_name: str = Field("", alias="callerName")
    callee_id: str = Field(..., alias="calleeId", min_length=1)
    callee_name: str = Field("", alias="calleeName")
    appointment_id: str = Field("", alias="appointmentId")
    channel_name: str = Field(..., alias="channelName", min_length=1)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "callerId": "patient-42",
                "callerName": "Alex Doe",
                "calleeId": "doctor-7",
                "calleeName": "Dr. Rivera",
                "appointmentId": "appt-1001",
                "channelName": "appointment_appt-1001",
            }
        },
    )


class CallActionRequest(BaseModel):
    """Identifies who accepts or rejects a call."""

    user_id: str = Field(..., alias="userId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CallEndRequest(BaseModel):
    """Optional identity of the party hanging up."""

    ended_by: Optional[str] = Field(None, alias="endedBy")

    model_config = ConfigDict(populate_by_name=True)


class CallSnapshotResponse(BaseModel):
    """Point-in-time view of a call. Only ``callId`` is set once a call is gone."""

    call_id: str = Field(..., alias="callId")
    status: Optional[str] = Field(None, description="ringing, accepted, rejected or ended")
    caller_id: Optional[str] = Field(None, alias="callerId")
    caller_name: Optional[str] = Field(None, alias="callerName")
    callee_id: Optional[str] = Field(None, alias="calleeId")
    callee_name: Optional[str] = Field(None, alias="calleeName")
    appointment_id: Optional[str] = Field(None, alias="appointmentId")
    channel_name: Optional[str] = Field(None, alias="channelName")
    start_time: Optional[datetime] = Field(None, alias="startTime")
    end_time: Optional[datetime] = Field(None, alias="endTime")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_call(cls, call: Call) -> "CallSnapshotResponse":
        return cls(
            call_id=call.call_id,
            status=call.status.value,
            caller_id=call.caller_id,
            caller_name=call.caller_name,
            callee_id=call.callee_id,
            callee_name=call.callee_name,
            appointment_id=call.appointment_id,
            channel_name=call.channel_name,
            start_time=call.start_time,
            end_time=call.end_time,
            created_at=call.created_at,
        )

    @classmethod
    def gone(cls, call_id: str) -> "CallSnapshotResponse":
        return cls(call_id=call_id, status=None)


class CallListResponse(BaseModel):
    """Active calls involving one user."""

    calls: List[CallSnapshotResponse]
    total: int
