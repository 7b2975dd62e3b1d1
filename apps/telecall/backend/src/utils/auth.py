"""
utils/auth.py
=============
Bearer-token handling for the signaling relay.
"""

from typing import List, Optional

import jwt
from fastapi import HTTPException, Request

from apps.telecall.backend.config.infrastructure import (
    SIGNALING_JWT_ALGORITHMS,
    SIGNALING_JWT_SECRET,
)
from utils.ml_logging import get_logger

logger = get_logger("telecall.auth")


class AuthError(Exception):
    """Generic authentication error."""

    pass


def decode_signaling_token(
    token: str,
    secret: Optional[str] = None,
    algorithms: Optional[List[str]] = None,
) -> dict:
    """
    Decode a relay bearer token.

    With a secret the signature is verified; without one the token only has to
    be a well-formed JWT (development mode).

    :raises AuthError: When the token cannot be decoded or fails verification
    """
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=algorithms or ["HS256"])
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    if not authorization_header or not authorization_header.startswith("Bearer "):
        raise HTTPException(
            status_code=401, detail="Missing or malformed Authorization header"
        )
    return authorization_header.split(" ", 1)[1]


def validate_signaling_token(request: Request) -> dict:
    """FastAPI dependency: returns the decoded claims or raises 401."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    try:
        return decode_signaling_token(
            token, secret=SIGNALING_JWT_SECRET, algorithms=SIGNALING_JWT_ALGORITHMS
        )
    except AuthError as e:
        logger.warning(f"Relay token rejected: {e}")
        raise HTTPException(status_code=401, detail=str(e))
