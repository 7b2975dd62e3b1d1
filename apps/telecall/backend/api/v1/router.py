"""
API V1 Router
=============

Main router for API v1 endpoints.
"""

from fastapi import APIRouter
from .endpoints import calls, events, health

# Create v1 router
v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(health.router, tags=["health"])
v1_router.include_router(calls.router, prefix="/calls", tags=["Call Management"])
v1_router.include_router(events.router, prefix="/events", tags=["Event Relay"])
