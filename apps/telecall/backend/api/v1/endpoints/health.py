"""
Health Endpoints
===============

Liveness check reporting transport state and call/relay counters.
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

from utils.ml_logging import get_logger

logger = get_logger("v1.health")

router = APIRouter()


@router.get("/health", summary="Service health")
async def health_check(request: Request) -> Dict[str, Any]:
    state = request.app.state
    coordinator = getattr(state, "coordinator", None)
    transport = getattr(state, "transport", None)
    store = getattr(state, "event_store", None)

    ready = coordinator is not None and transport is not None
    response: Dict[str, Any] = {
        "status": "healthy" if ready else "starting",
        "timestamp": time.time(),
        "transport": {
            "kind": getattr(state, "transport_kind", None),
            "connected": transport.is_connected() if transport else False,
            "mock_mode": transport.is_mock_mode() if transport else None,
        },
        "active_calls": coordinator.get_stats()["active_calls"] if coordinator else 0,
    }
    if store is not None:
        response["relay"] = store.get_stats()
    if not ready:
        logger.warning("Health check while signaling is not initialized")
    return response
