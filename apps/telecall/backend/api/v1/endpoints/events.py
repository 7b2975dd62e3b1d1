"""
Event Relay Endpoints
=====================

HTTP relay for polling clients: authenticate, post an event, poll your queue.
Every route requires a bearer token.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from src.signaling import EventStore
from utils.ml_logging import get_logger

from apps.telecall.backend.src.utils.auth import validate_signaling_token
from ..dependencies.signaling import get_event_store
from ..schemas.event import (
    AuthenticateRequest,
    AuthenticateResponse,
    EmitRequest,
    EmitResponse,
    RelayEvent,
)

logger = get_logger("api.v1.events")
router = APIRouter(dependencies=[Depends(validate_signaling_token)])


@router.post("/authenticate", response_model=AuthenticateResponse, summary="Authenticate Relay Client")
def authenticate(body: AuthenticateRequest) -> AuthenticateResponse:
    logger.info(
        f"Relay client authenticated ({body.user_role})", extra={"user_id": body.user_id}
    )
    return AuthenticateResponse(
        success=True,
        user_id=body.user_id,
        user_role=body.user_role,
        message="Authenticated for real-time events",
    )


@router.post("/emit", response_model=EmitResponse, summary="Emit Event")
def emit_event(
    body: EmitRequest,
    store: EventStore = Depends(get_event_store),
) -> EmitResponse:
    try:
        event_id = store.add_event(body.user_id, body.event_type, body.data)
    except Exception as e:
        logger.error(f"Failed to store relay event {body.event_type}: {e}")
        raise HTTPException(status_code=500, detail="Failed to emit event")

    # event ids carry their millisecond timestamp: event_<ms>_<rand>
    timestamp = int(event_id.split("_")[1])
    return EmitResponse(success=True, event_id=event_id, timestamp=timestamp)


@router.get("/poll", response_model=List[RelayEvent], summary="Poll Events")
def poll_events(
    user_id: str = Query(..., alias="userId", min_length=1),
    since: int = Query(0, ge=0),
    store: EventStore = Depends(get_event_store),
) -> List[RelayEvent]:
    try:
        events = store.get_events(user_id, since)
    except Exception as e:
        logger.error(f"Failed to read relay events for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to poll events")
    return [RelayEvent.model_validate(e) for e in events]
