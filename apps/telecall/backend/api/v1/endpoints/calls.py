"""
Call Management Endpoints
========================

REST surface over the call coordinator: start, answer, reject and end calls,
and inspect the calls the service is tracking.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from opentelemetry.trace import SpanKind

from src.signaling import CallCoordinator, CallRequest
from utils.ml_logging import get_logger

from ..dependencies.signaling import get_coordinator
from ..schemas.call import (
    CallActionRequest,
    CallEndRequest,
    CallInitiateRequest,
    CallListResponse,
    CallSnapshotResponse,
)

logger = get_logger("api.v1.calls")
tracer = trace.get_tracer(__name__)
router = APIRouter()


def _current(coordinator: CallCoordinator, call_id: str) -> CallSnapshotResponse:
    call = coordinator.get_active_call(call_id)
    if call is None:
        return CallSnapshotResponse.gone(call_id)
    return CallSnapshotResponse.from_call(call)


@router.post(
    "",
    response_model=CallSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initiate Call",
    description="Create a ringing call and notify the callee. Returns without waiting for an answer.",
)
def initiate_call(
    body: CallInitiateRequest,
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallSnapshotResponse:
    with tracer.start_as_current_span(
        "api.v1.calls.initiate",
        kind=SpanKind.SERVER,
        attributes={"user.id": body.caller_id},
    ):
        call = coordinator.initiate_call(
            CallRequest(
                callee_id=body.callee_id,
                callee_name=body.callee_name,
                appointment_id=body.appointment_id,
                channel_name=body.channel_name,
            ),
            body.caller_id,
            body.caller_name,
        )
        return CallSnapshotResponse.from_call(call)


@router.post("/{call_id}/accept", response_model=CallSnapshotResponse, summary="Accept Call")
def accept_call(
    call_id: str,
    body: CallActionRequest,
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallSnapshotResponse:
    coordinator.accept_call(call_id, body.user_id)
    return _current(coordinator, call_id)


@router.post("/{call_id}/reject", response_model=CallSnapshotResponse, summary="Reject Call")
def reject_call(
    call_id: str,
    body: CallActionRequest,
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallSnapshotResponse:
    coordinator.reject_call(call_id, body.user_id)
    return _current(coordinator, call_id)


@router.post("/{call_id}/end", response_model=CallSnapshotResponse, summary="End Call")
def end_call(
    call_id: str,
    body: Optional[CallEndRequest] = None,
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallSnapshotResponse:
    coordinator.end_call(call_id, body.ended_by if body else None)
    return _current(coordinator, call_id)


@router.get("/{call_id}", response_model=CallSnapshotResponse, summary="Get Call")
def get_call(
    call_id: str,
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallSnapshotResponse:
    call = coordinator.get_active_call(call_id)
    if call is None:
        raise HTTPException(status_code=404, detail=f"Call {call_id} not found")
    return CallSnapshotResponse.from_call(call)


@router.get("", response_model=CallListResponse, summary="List User Calls")
def list_calls(
    user_id: str = Query(..., min_length=1, description="Caller or callee id"),
    coordinator: CallCoordinator = Depends(get_coordinator),
) -> CallListResponse:
    calls = [CallSnapshotResponse.from_call(c) for c in coordinator.get_user_active_calls(user_id)]
    return CallListResponse(calls=calls, total=len(calls))
