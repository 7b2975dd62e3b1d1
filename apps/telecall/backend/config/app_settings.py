"""
Application Settings
===================

Main configuration module that consolidates all settings from specialized
configuration modules for easy access throughout the application.
"""

from .signaling_config import *
from .feature_flags import *
from .infrastructure import *

# ==============================================================================
# VALIDATION FUNCTIONS
# ==============================================================================


def validate_app_settings():
    """
    Validate current application settings and return validation results.

    Returns:
        Dict containing validation status, issues, warnings, and settings count
    """
    issues = []
    warnings = []

    if SIGNALING_TRANSPORT not in SUPPORTED_TRANSPORTS:
        issues.append(
            f"SIGNALING_TRANSPORT must be one of {', '.join(SUPPORTED_TRANSPORTS)} "
            f"(got '{SIGNALING_TRANSPORT}')"
        )
    elif SIGNALING_TRANSPORT == "redis" and not REDIS_HOST:
        issues.append("REDIS_HOST is required when SIGNALING_TRANSPORT=redis")

    if CALL_PURGE_DELAY_SECONDS < 0:
        issues.append("CALL_PURGE_DELAY_SECONDS cannot be negative")

    if CALL_RING_TIMEOUT_SECONDS < 0:
        issues.append("CALL_RING_TIMEOUT_SECONDS cannot be negative")
    elif CALL_RING_TIMEOUT_SECONDS == 0:
        warnings.append("CALL_RING_TIMEOUT_SECONDS is 0; unanswered calls ring forever")

    if EVENT_RETENTION_SECONDS < EVENT_CLEANUP_INTERVAL_SECONDS:
        warnings.append(
            f"EVENT_RETENTION_SECONDS ({EVENT_RETENTION_SECONDS}) is shorter than "
            f"EVENT_CLEANUP_INTERVAL_SECONDS ({EVENT_CLEANUP_INTERVAL_SECONDS})"
        )

    if not SIGNALING_JWT_SECRET:
        if ENVIRONMENT in ("production", "prod"):
            issues.append("SIGNALING_JWT_SECRET must be set in production")
        else:
            warnings.append("SIGNALING_JWT_SECRET not set; relay tokens are not verified")

    import sys

    current_module = sys.modules[__name__]
    settings_count = len(
        [
            name
            for name in dir(current_module)
            if name.isupper() and not name.startswith("_")
        ]
    )

    return {
        "valid": len(issues) == 0,
        "issues": issues,
        "warnings": warnings,
        "settings_count": settings_count,
    }
