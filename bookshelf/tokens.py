"""Issuing and verifying signed JWT access tokens."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

TOKEN_EXPIRY = timedelta(hours=24)
SECRET_ENV_VAR = "JWT_SECRET_KEY"

_SIGNING_ALGORITHM = "HS256"
_ACCEPTED_ALGORITHMS = ["HS256", "HS384", "HS512"]


def _secret_key() -> str:
    return os.environ.get(SECRET_ENV_VAR, "secret")


def generate_token(user_id: int) -> str:
    """Return a token carrying ``user_id`` that expires after ``TOKEN_EXPIRY``."""
    expires = datetime.now(timezone.utc) + TOKEN_EXPIRY
    claims = {"user_id": user_id, "exp": int(expires.timestamp())}
    return jwt.encode(claims, _secret_key(), algorithm=_SIGNING_ALGORITHM)


def parse_token(signed_token: str) -> dict[str, Any]:
    """Verify ``signed_token`` and return its claims.

    Raises ``jwt.InvalidTokenError`` (or a subclass) for malformed, tampered
    or expired tokens.
    """
    return jwt.decode(signed_token, _secret_key(), algorithms=_ACCEPTED_ALGORITHMS)