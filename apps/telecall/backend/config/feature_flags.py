"""
Feature Flags and Application Behavior
=======================================

Environment, debugging and documentation toggles for the telecall service.
"""

import os

# Environment and debugging
DEBUG_MODE = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes", "on")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Documentation features
_enable_docs_raw = os.getenv("ENABLE_DOCS", "auto").lower()

# Auto-detect docs enablement based on environment if not explicitly set
if _enable_docs_raw == "auto":
    ENABLE_DOCS = ENVIRONMENT not in ("production", "prod", "staging", "uat")
elif _enable_docs_raw in ("true", "1", "yes", "on"):
    ENABLE_DOCS = True
else:
    ENABLE_DOCS = False

DOCS_URL = "/docs" if ENABLE_DOCS else None
REDOC_URL = "/redoc" if ENABLE_DOCS else None
OPENAPI_URL = "/openapi.json" if ENABLE_DOCS else None

ENABLE_TRACING = os.getenv("ENABLE_TRACING", "true").lower() == "true"
