"""Bearer-token and admin basic authentication for the HTTP routes."""

from __future__ import annotations

import functools
import hmac
import logging
import os
from typing import Any, Callable

import jwt
from flask import g, jsonify, request

from bookshelf.models import ErrorResponse
from bookshelf.tokens import parse_token

logger = logging.getLogger(__name__)

_REALM = 'Basic realm="Authorization Required"'


class AuthError(Exception):
    """Authentication failed; carries the HTTP status and the reply message."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def authenticate_bearer(header: str | None) -> Any:
    """Validate an ``Authorization: Bearer <token>`` value and return its user id claim."""
    if not header:
        raise AuthError(401, "Authorization field empty")
    logger.debug("header of authorization: %s", header)
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise AuthError(401, "Authorization header format must be 'Bearer <token>'")
    try:
        claims = parse_token(parts[1])
    except jwt.InvalidTokenError as exc:
        raise AuthError(400, "Invalid token") from exc
    return claims.get("user_id")


def _admin_account() -> tuple[str, str]:
    return (
        os.environ.get("ADMIN_USERNAME", "SuperUser"),
        os.environ.get("ADMIN_PASSWORD", "password"),
    )


def check_admin(username: str | None, password: str | None) -> bool:
    """Return whether the credentials match the admin account."""
    expected_user, expected_password = _admin_account()
    user_ok = hmac.compare_digest((username or "").encode(), expected_user.encode())
    password_ok = hmac.compare_digest((password or "").encode(), expected_password.encode())
    return user_ok and password_ok


def _error(status: int, message: str):
    response = jsonify(ErrorResponse(message).to_dict())
    response.status_code = status
    return response


def jwt_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """Allow the view only with a valid bearer token; sets ``g.user_id``."""

    @functools.wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            user_id = authenticate_bearer(request.headers.get("Authorization", ""))
        except AuthError as exc:
            return _error(exc.status, exc.message)
        g.user_id = user_id
        return view(*args, **kwargs)

    return wrapper


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """Allow the view only with the admin's basic credentials."""

    @functools.wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        auth = request.authorization
        if (
            auth is None
            or (auth.type or "").lower() != "basic"
            or not check_admin(auth.username, auth.password)
        ):
            response = _error(401, "check username or password")
            response.headers["WWW-Authenticate"] = _REALM
            return response
        return view(*args, **kwargs)

    return wrapper