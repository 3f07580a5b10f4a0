"""Auth API — registration, login, logout, session check.

Learn: Routes for the cookie-based session:
- POST /auth/register → create an account and log in
- POST /auth/login → username-or-email + password → auth cookie
- POST /auth/logout → clear the cookie
- GET /auth/me → current user
- GET /auth/check → {isAuthenticated, user}, never 401

The token goes into an httpOnly cookie rather than the response body:
page scripts can't read it, and the browser attaches it to the Socket.IO
handshake automatically.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.dependencies import get_current_user, get_current_user_optional
from murmur.auth.jwt import create_access_token
from murmur.config import settings
from murmur.db.engine import get_db
from murmur.db.models import User
from murmur.schemas.base import MessageResponse
from murmur.schemas.user import (
    AuthCheck,
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserRead,
)
from murmur.services.user_service import (
    EmailTakenError,
    InvalidCredentialsError,
    UserService,
    UsernameTakenError,
)

router = APIRouter(prefix="/auth")


def _set_auth_cookie(response: Response, user: User) -> None:
    token = create_access_token(user.id, user.username, user.email)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure or settings.is_production,
    )


# ─── Register / Login ───────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await UserService(db).register(
            username=body.username,
            display_name=body.display_name,
            email=body.email,
            password=body.password,
        )
    except UsernameTakenError:
        raise HTTPException(status_code=409, detail="Username already taken")
    except EmailTakenError:
        raise HTTPException(status_code=409, detail="Email already registered")

    _set_auth_cookie(response, user)
    return AuthResponse(user=UserRead.model_validate(user), message="Registered")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await UserService(db).authenticate(body.identifier, body.password)
    except InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    _set_auth_cookie(response, user)
    return AuthResponse(user=UserRead.model_validate(user), message="Logged in")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, user: User = Depends(get_current_user)):
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure or settings.is_production,
    )
    return MessageResponse(message="Logged out")


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=AuthResponse)
async def get_me(user: User = Depends(get_current_user)):
    return AuthResponse(user=UserRead.model_validate(user), message="Current user")


@router.get("/check", response_model=AuthCheck)
async def check(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """Report whether the caller is logged in. A bad token reads as "no"."""
    try:
        user = await get_current_user_optional(request, authorization, db)
    except HTTPException:
        user = None
    if user is None:
        return AuthCheck(is_authenticated=False)
    return AuthCheck(is_authenticated=True, user=UserRead.model_validate(user))
