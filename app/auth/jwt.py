"""Access and refresh tokens (HS256 JWTs signed with ``JWT_SECRET_KEY``)."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(claims: dict, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + lifetime, "type": token_type}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token. ``data`` must carry ``sub``."""
    return _encode(data, ACCESS, expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token. ``data`` must carry ``sub``."""
    return _encode(data, REFRESH, expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days))


def decode_token(token: str) -> dict:
    """Decode and verify a token.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def token_subject(payload: dict, expected_type: str) -> uuid.UUID:
    """Return the user id a decoded token was issued for.

    Raises:
        jose.JWTError: If the token type is wrong or ``sub`` is not a UUID.
    """
    if payload.get("type") != expected_type:
        raise JWTError("Invalid token type")
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise JWTError("Invalid token subject") from None


def create_token_pair(user_id: str, role: str = "user") -> dict[str, str]:
    """Create both tokens for a user; the access token also carries the role."""
    return {
        "access_token": create_access_token({"sub": user_id, "role": role}),
        "refresh_token": create_refresh_token({"sub": user_id}),
        "token_type": "bearer",
    }
