"""
Configuration Package
====================

Centralized configuration management for the telecall signaling service.

Usage:
    from apps.telecall.backend.config import AppConfig, validate_app_settings

    config = AppConfig()
"""

from .app_config import AppConfig
from .app_settings import validate_app_settings
from .feature_flags import (
    DEBUG_MODE,
    DOCS_URL,
    ENABLE_DOCS,
    ENVIRONMENT,
    OPENAPI_URL,
    REDOC_URL,
)
from .infrastructure import (
    ALLOWED_ORIGINS,
    REDIS_ACCESS_KEY,
    REDIS_HOST,
    REDIS_PORT,
    REDIS_SSL,
    SIGNALING_JWT_ALGORITHMS,
    SIGNALING_JWT_SECRET,
)
from .signaling_config import (
    CALL_PURGE_DELAY_SECONDS,
    CALL_RING_TIMEOUT_SECONDS,
    EVENT_CLEANUP_INTERVAL_SECONDS,
    EVENT_RETENTION_SECONDS,
    REDIS_CHANNEL_PREFIX,
    SIGNALING_TRANSPORT,
    SUPPORTED_TRANSPORTS,
    TRANSPORT_HEARTBEAT_SECONDS,
)

__all__ = [
    "AppConfig",
    "validate_app_settings",
    "ALLOWED_ORIGINS",
    "CALL_PURGE_DELAY_SECONDS",
    "CALL_RING_TIMEOUT_SECONDS",
    "DEBUG_MODE",
    "DOCS_URL",
    "ENABLE_DOCS",
    "ENVIRONMENT",
    "EVENT_CLEANUP_INTERVAL_SECONDS",
    "EVENT_RETENTION_SECONDS",
    "OPENAPI_URL",
    "REDIS_ACCESS_KEY",
    "REDIS_CHANNEL_PREFIX",
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_SSL",
    "REDOC_URL",
    "SIGNALING_JWT_ALGORITHMS",
    "SIGNALING_JWT_SECRET",
    "SIGNALING_TRANSPORT",
    "SUPPORTED_TRANSPORTS",
    "TRANSPORT_HEARTBEAT_SECONDS",
]
