"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current user from the request.

Two places a token can come from:
1. The httpOnly `access_token` cookie (browsers)
2. An `Authorization: Bearer` header (CLI, scripts, tests)

The cookie wins when both are present. Either way the token must verify
and resolve to a user that still exists and is active.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.jwt import TokenError, verify_token
from murmur.config import settings
from murmur.db.engine import get_db
from murmur.db.models import User
from murmur.services.user_service import UserService


def token_from_request(
    request: Request, authorization: Optional[str] = None
) -> Optional[str]:
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Current user, or None when the request carries no token.

    Learn: This is the "soft" auth dependency, for endpoints that work
    both ways (the feed shows isLikedByCurrentUser only when logged in).
    A token that IS present but bad is still a 401.
    """
    token = token_from_request(request, authorization)
    if not token:
        return None

    try:
        claims = verify_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await UserService(db).get_active_user(claims.user_id)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="User not found or inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Current user (required — 401 if no auth)."""
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
