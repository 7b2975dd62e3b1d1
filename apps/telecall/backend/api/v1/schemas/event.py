"""
Relay event schemas.

Request and response models for the polling relay (``/api/v1/events``).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthenticateRequest(BaseModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    user_role: str = Field(..., alias="userRole", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class AuthenticateResponse(BaseModel):
    success: bool
    user_id: str = Field(..., alias="userId")
    user_role: str = Field(..., alias="userRole")
    message: str

    model_config = ConfigDict(populate_by_name=True)


class EmitRequest(BaseModel):
    """An event posted by a polling client."""

    user_id: str = Field(..., alias="userId", min_length=1)
    event_type: str = Field(..., alias="eventType", min_length=1)
    data: Any = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "doctor-7",
                "eventType": "call-response",
                "data": {
                    "callId": "call_1718000000000_patient-42_doctor-7_1a2b3c4d",
                    "accepted": True,
                    "callerId": "patient-42",
                    "calleeId": "doctor-7",
                    "appointmentId": "appt-1001",
                },
            }
        },
    )


class EmitResponse(BaseModel):
    success: bool
    event_id: str = Field(..., alias="eventId")
    timestamp: int

    model_config = ConfigDict(populate_by_name=True)


class RelayEvent(BaseModel):
    """An event waiting in a user's relay queue."""

    id: str
    event_type: str = Field(..., alias="eventType")
    data: Any = None
    timestamp: int
    user_id: str = Field(..., alias="userId")
    sender: Optional[str] = Field(None, alias="from")

    model_config = ConfigDict(populate_by_name=True)
