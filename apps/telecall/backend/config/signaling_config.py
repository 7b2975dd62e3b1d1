"""
Signaling Configuration
=======================

Call lifecycle timings, transport selection and relay retention settings
for the telecall signaling service.
"""

import os

# ==============================================================================
# TRANSPORT SELECTION
# ==============================================================================

# "loopback" keeps everything in-process (mock mode); "redis" fans events out
# to other processes through Redis pub/sub.
SIGNALING_TRANSPORT = os.getenv("SIGNALING_TRANSPORT", "loopback").lower()
SUPPORTED_TRANSPORTS = ("loopback", "redis")

# Identity the service process uses when it joins the transport
SIGNALING_SERVICE_USER_ID = os.getenv("SIGNALING_SERVICE_USER_ID", "telecall-service")
SIGNALING_SERVICE_ROLE = os.getenv("SIGNALING_SERVICE_ROLE", "service")

REDIS_CHANNEL_PREFIX = os.getenv("REDIS_CHANNEL_PREFIX", "telecall")

# ==============================================================================
# CALL LIFECYCLE
# ==============================================================================

# Grace delay before a rejected/ended call leaves the active map
CALL_PURGE_DELAY_SECONDS = float(os.getenv("CALL_PURGE_DELAY_SECONDS", "1.0"))

# Unanswered calls are rejected with reason "timeout" after this many seconds (0 disables)
CALL_RING_TIMEOUT_SECONDS = float(os.getenv("CALL_RING_TIMEOUT_SECONDS", "30"))

TRANSPORT_HEARTBEAT_SECONDS = float(os.getenv("TRANSPORT_HEARTBEAT_SECONDS", "25"))

# ==============================================================================
# EVENT RELAY
# ==============================================================================

EVENT_RETENTION_SECONDS = int(os.getenv("EVENT_RETENTION_SECONDS", "3600"))
EVENT_CLEANUP_INTERVAL_SECONDS = int(os.getenv("EVENT_CLEANUP_INTERVAL_SECONDS", "600"))
