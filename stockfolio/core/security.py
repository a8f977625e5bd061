"""Verification of identity provider JWTs."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from .config import settings
from .exceptions import AuthenticationError


JWT_ALGORITHM = "HS256"


class TokenData(BaseModel):
    """Decoded identity provider token."""

    sub: str  # external user id
    exp: datetime
    iat: datetime
    iss: str
    aud: str
    email: Optional[str] = None
    name: Optional[str] = None


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(value, tz=timezone.utc)


def create_access_token(
    subject: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a token the way the identity provider does (local development and tests)."""
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    payload = {
        "sub": subject,
        "exp": expires,
        "iat": now,
        "iss": settings.auth_issuer,
        "aud": settings.auth_audience,
        "jti": secrets.token_urlsafe(16),
    }
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name

    return jwt.encode(payload, settings.auth_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """Decode and validate a bearer token."""
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret,
            algorithms=[JWT_ALGORITHM],
            issuer=settings.auth_issuer,
            audience=settings.auth_audience,
            options={"require": ["exp", "iat", "sub", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token has expired", error_code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError(message="Invalid token", error_code="INVALID_TOKEN")

    return TokenData(
        sub=payload["sub"],
        exp=_as_datetime(payload["exp"]),
        iat=_as_datetime(payload["iat"]),
        iss=payload["iss"],
        aud=payload["aud"],
        email=payload.get("email"),
        name=payload.get("name"),
    )
