"""Realtime event names and payloads.

Learn: Centralizing event names as constants prevents typos and makes it
easy to discover the whole wire contract in one place. Payloads are frozen
pydantic models serialised with camelCase keys (`likeCount`, `userId`).

Like events carry the absolute `likeCount`, never a delta: a client that
receives the same `post:liked` twice ends up with the same count.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import ConfigDict, Field

from murmur.schemas.base import CamelModel
from murmur.schemas.post import AuthorRead

# ─── Server → client ─────────────────────────────────────

POST_CREATED = "post:created"
POST_DELETED = "post:deleted"
POST_LIKED = "post:liked"
POST_UNLIKED = "post:unliked"
USER_CONNECTED = "user:connected"
USER_DISCONNECTED = "user:disconnected"
USERS_ONLINE = "users:online"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"
ERROR = "error"

# ─── Client → server ─────────────────────────────────────

JOIN = "join"
LEAVE = "leave"
GET_ONLINE = "users:get-online"
# typing:start / typing:stop use the same names in both directions


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventPayload(CamelModel):
    model_config = ConfigDict(frozen=True)


# ─── Post lifecycle ──────────────────────────────────────

class PostCreated(EventPayload):
    id: int
    content: str
    author: AuthorRead
    created_at: datetime
    like_count: int = 0


class PostDeleted(EventPayload):
    id: int
    author_id: int


class PostLikeChanged(EventPayload):
    """Payload of both post:liked and post:unliked."""
    post_id: int
    user_id: int
    username: str
    like_count: int = Field(..., ge=0)
    is_liked: bool


# ─── Presence ────────────────────────────────────────────

class UserConnected(EventPayload):
    user_id: int
    username: str
    display_name: str
    connected_at: datetime


class UserDisconnected(EventPayload):
    user_id: int
    username: str
    display_name: str


class OnlineUser(EventPayload):
    user_id: int
    username: str
    display_name: str


class PresenceSnapshot(EventPayload):
    users: list[OnlineUser]
    count: int


# ─── Typing ──────────────────────────────────────────────

class TypingPayload(EventPayload):
    user_id: int
    username: str
    display_name: str
    is_typing: bool


# ─── Errors ──────────────────────────────────────────────

class ErrorEvent(EventPayload):
    error: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    code: Optional[str] = None


# ─── Client requests ─────────────────────────────────────

class RoomRequest(CamelModel):
    room: str = Field(..., min_length=1, max_length=64)


class TypingStartRequest(CamelModel):
    # Draft content is accepted but never used for broadcast decisions.
    content: Optional[str] = Field(None, max_length=280)


class TypingStopRequest(CamelModel):
    final_length: Optional[int] = Field(None, ge=0)
