"""Security utilities: signed client cookies."""

import secrets
from datetime import datetime, timedelta, timezone

import jwt

from smarthome.config import settings


def new_client_id() -> str:
    return f"cl_{secrets.token_hex(8)}"


def create_client_token(client_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(seconds=settings.cookie_max_age)
    payload = {
        "sub": client_id,
        "exp": expire,
        "type": "client",
    }
    return jwt.encode(payload, settings.cookie_secret, algorithm=settings.cookie_algorithm)


def decode_client_token(token: str) -> str | None:
    """Client id carried by a cookie, or None if it is forged, expired or malformed."""
    try:
        payload = jwt.decode(token, settings.cookie_secret, algorithms=[settings.cookie_algorithm])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != "client":
        return None
    return payload.get("sub")
