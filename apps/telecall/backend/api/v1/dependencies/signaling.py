"""
Signaling Dependency Injection
==============================

FastAPI providers for the objects the lifespan places on ``app.state``.
"""

from fastapi import HTTPException, Request

from src.signaling import CallCoordinator, EventStore


def get_coordinator(request: Request) -> CallCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Call coordinator not initialized")
    return coordinator


def get_event_store(request: Request) -> EventStore:
    store = getattr(request.app.state, "event_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Event relay not initialized")
    return store
