"""
Bearer-token authentication.

Tokens are HS256 JWTs whose `sub` claim is the user id. `require_auth`
validates the token and loads the user into `flask.g.user`.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import g, request

import config
from database import get_user
from errors import AuthenticationError


def issue_token(user_id: int, expires_in: timedelta = timedelta(hours=config.JWT_EXPIRY_HOURS)) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> int:
    """User id from a token. Raises AuthenticationError."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid token") from e
    try:
        return int(payload["sub"])
    except (KeyError, ValueError) as e:
        raise AuthenticationError("Invalid token") from e


def require_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            raise AuthenticationError()
        user = get_user(verify_token(header[len("Bearer "):].strip()))
        if user is None:
            raise AuthenticationError("User not found")
        g.user = user
        return f(*args, **kwargs)
    return decorated
