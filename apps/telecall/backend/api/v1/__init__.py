"""
API V1
======

Versioned HTTP surface of the telecall signaling service.
"""

from .router import v1_router

__all__ = ["v1_router"]
