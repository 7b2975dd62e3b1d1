"""Telecall call signaling.

Transports, the call coordinator and the event relay store used by the
telecall backend.
"""

__version__ = "1.0.0"
