"""
Infrastructure Configuration
============================

Redis connection details, token verification secret and CORS origins.
These are typically secrets and should be loaded from environment variables.
"""

import os
from typing import List

# ==============================================================================
# REDIS CONFIGURATION
# ==============================================================================

REDIS_HOST: str = os.getenv("REDIS_HOST", "")
REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() in ("true", "1", "yes", "on")

# ==============================================================================
# AUTHENTICATION
# ==============================================================================

# When empty, relay tokens are decoded without signature verification (development).
SIGNALING_JWT_SECRET: str = os.getenv("SIGNALING_JWT_SECRET", "")
SIGNALING_JWT_ALGORITHMS: List[str] = os.getenv(
    "SIGNALING_JWT_ALGORITHMS", "HS256"
).split(",")

# ==============================================================================
# CORS
# ==============================================================================

ALLOWED_ORIGINS: List[str] = (
    os.getenv("ALLOWED_ORIGINS", "*").split(",")
    if os.getenv("ALLOWED_ORIGINS")
    else ["*"]
)
