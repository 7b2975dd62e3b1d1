"""
API V1 endpoints.
"""

from . import calls, events, health

__all__ = ["calls", "events", "health"]
