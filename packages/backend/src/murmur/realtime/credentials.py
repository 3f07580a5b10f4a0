"""Connection authentication — cookie → token → user identity.

Learn: The realtime channel reuses the REST login. The browser sends the
httpOnly `access_token` cookie with the Socket.IO handshake; we pull it out
of the handshake headers, verify it with the same JWT code the REST API
uses, and resolve the user (who must still exist and be active).

Any failure raises AuthRejected. The gateway turns that into a refused
connection — no event is ever sent to an unauthenticated socket.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from murmur.auth.jwt import TokenClaims, TokenError, verify_token
from murmur.services.user_service import UserService


class AuthRejected(Exception):
    """Missing/invalid/expired credential, or unknown/inactive user."""

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class Identity:
    """Who is behind an authenticated connection."""

    user_id: int
    username: str
    display_name: str


class CredentialVerifier(Protocol):
    """What the gateway needs from the auth collaborator."""

    def verify_token(self, token: str) -> TokenClaims:
        """Raise TokenError if the signature or expiry is bad."""
        ...

    async def resolve_user(self, user_id: int) -> Optional[Identity]:
        """Return None if the user is gone or deactivated."""
        ...


class JwtCredentialVerifier:
    """CredentialVerifier backed by PyJWT and the users table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def verify_token(self, token: str) -> TokenClaims:
        return verify_token(token)

    async def resolve_user(self, user_id: int) -> Optional[Identity]:
        async with self.session_factory() as db:
            user = await UserService(db).get_active_user(user_id)
        if user is None:
            return None
        return Identity(
            user_id=user.id,
            username=user.username,
            display_name=user.display_name,
        )


def parse_cookie_header(header: Optional[str]) -> dict[str, str]:
    """Split a raw Cookie header into a name → value dict.

    A malformed pair is skipped; the rest still parse.
    """
    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for part in header.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name] = value.strip().strip('"')
    return cookies


def cookie_header_from_environ(environ: dict[str, Any]) -> Optional[str]:
    """Read the Cookie header from a python-socketio environ.

    ASGI servers expose headers both as HTTP_* keys and inside
    `asgi.scope`; check both.
    """
    header = environ.get("HTTP_COOKIE")
    if header:
        return header

    scope = environ.get("asgi.scope")
    if isinstance(scope, dict):
        for name, value in scope.get("headers", []):
            if name.lower() == b"cookie":
                return value.decode("latin-1")
    return None


async def authenticate(
    verifier: CredentialVerifier,
    cookie_header: Optional[str],
    cookie_name: str,
) -> Identity:
    """Resolve a handshake cookie to an Identity or raise AuthRejected."""
    token = parse_cookie_header(cookie_header).get(cookie_name)
    if not token:
        raise AuthRejected("missing_token", "No auth cookie in handshake")

    try:
        claims = verifier.verify_token(token)
    except TokenError as e:
        raise AuthRejected("invalid_token", str(e)) from e

    identity = await verifier.resolve_user(claims.user_id)
    if identity is None:
        raise AuthRejected("unknown_user", f"User {claims.user_id} not found or inactive")
    return identity
