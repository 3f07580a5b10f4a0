"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
The access token carries the user id (as the `sub` claim), username and
email, and lives as long as the auth cookie (7 days by default).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from murmur.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of an access token."""

    user_id: int
    username: str
    email: str
    issued_at: datetime
    expires_at: datetime


def create_access_token(
    user_id: int,
    username: str,
    email: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "type": "access",
        "exp": expires,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> TokenClaims:
    """Verify and decode a JWT token.

    Returns the claims on success.
    Raises TokenError on failure (bad signature, expired, malformed).
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenError("Invalid token: subject is not a user id")

    return TokenClaims(
        user_id=user_id,
        username=payload.get("username", ""),
        email=payload.get("email", ""),
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
