"""Realtime client — receiver-side reconciliation and reconnection.

Learn: The server only fans events out. Making sense of them is the
receiver's job, and this module is that job in Python (the CLI `watch`
command and the tests use it; the browser client does the same thing):

- presence comes from `users:online` snapshots (replace, never merge)
- typing is a map keyed by user id; `typing:stop` removes the user, and
  an entry silently expires after ~2s without a fresh `typing:start`
- like counts are keyed by post id and REPLACED with the absolute
  `likeCount` from each event, so re-applying an event is harmless

RealtimeClient wraps python-socketio's AsyncClient: it sends the auth
cookie in the handshake, reconnects with exponential backoff, and pulls a
fresh presence snapshot after every (re)connect.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import socketio
import structlog

from murmur.config import settings
from murmur.realtime.events import (
    GET_ONLINE,
    POST_CREATED,
    POST_DELETED,
    POST_LIKED,
    POST_UNLIKED,
    TYPING_START,
    TYPING_STOP,
    USER_CONNECTED,
    USER_DISCONNECTED,
    USERS_ONLINE,
    ERROR,
    OnlineUser,
    PostCreated,
    PostDeleted,
    PostLikeChanged,
    PresenceSnapshot,
    TypingPayload,
    UserConnected,
    UserDisconnected,
)

logger = structlog.get_logger()

SERVER_EVENTS = (
    POST_CREATED,
    POST_DELETED,
    POST_LIKED,
    POST_UNLIKED,
    USER_CONNECTED,
    USER_DISCONNECTED,
    USERS_ONLINE,
    TYPING_START,
    TYPING_STOP,
    ERROR,
)


@dataclass
class TypingIndicator:
    user_id: int
    username: str
    display_name: str
    last_seen: float


class FeedState:
    """Local view of the feed, rebuilt from realtime events."""

    def __init__(
        self,
        me: Optional[int] = None,
        typing_timeout: float = settings.typing_timeout_seconds,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.me = me
        self.typing_timeout = typing_timeout
        self._clock = clock
        self.online: dict[int, OnlineUser] = {}
        self.posts: dict[int, PostCreated] = {}
        self.like_counts: dict[int, int] = {}
        self.liked_by_me: set[int] = set()
        self._typing: dict[int, TypingIndicator] = {}

    def apply(self, event: str, data: Any) -> None:
        """Fold one server event into the state. Unknown events are ignored."""
        handler = self._handlers().get(event)
        if handler is not None:
            handler(data)

    def _handlers(self) -> dict[str, Callable[[Any], None]]:
        return {
            POST_CREATED: self._post_created,
            POST_DELETED: self._post_deleted,
            POST_LIKED: self._like_changed,
            POST_UNLIKED: self._like_changed,
            USER_CONNECTED: self._user_connected,
            USER_DISCONNECTED: self._user_disconnected,
            USERS_ONLINE: self._users_online,
            TYPING_START: self._typing_changed,
            TYPING_STOP: self._typing_changed,
        }

    # ─── Queries ─────────────────────────────────────────

    @property
    def online_count(self) -> int:
        return len(self.online)

    def typing_users(self) -> list[TypingIndicator]:
        """Users currently typing; expired indicators are dropped."""
        now = self._clock()
        expired = [
            uid for uid, t in self._typing.items()
            if now - t.last_seen > self.typing_timeout
        ]
        for uid in expired:
            del self._typing[uid]
        return list(self._typing.values())

    # ─── Event folding ───────────────────────────────────

    def _post_created(self, data: Any) -> None:
        post = PostCreated.model_validate(data)
        self.posts[post.id] = post
        self.like_counts[post.id] = post.like_count

    def _post_deleted(self, data: Any) -> None:
        deleted = PostDeleted.model_validate(data)
        self.posts.pop(deleted.id, None)
        self.like_counts.pop(deleted.id, None)
        self.liked_by_me.discard(deleted.id)

    def _like_changed(self, data: Any) -> None:
        change = PostLikeChanged.model_validate(data)
        self.like_counts[change.post_id] = change.like_count
        if self.me is not None and change.user_id == self.me:
            if change.is_liked:
                self.liked_by_me.add(change.post_id)
            else:
                self.liked_by_me.discard(change.post_id)

    def _user_connected(self, data: Any) -> None:
        user = UserConnected.model_validate(data)
        self.online[user.user_id] = OnlineUser(
            user_id=user.user_id,
            username=user.username,
            display_name=user.display_name,
        )

    def _user_disconnected(self, data: Any) -> None:
        user = UserDisconnected.model_validate(data)
        self.online.pop(user.user_id, None)
        self._typing.pop(user.user_id, None)

    def _users_online(self, data: Any) -> None:
        snapshot = PresenceSnapshot.model_validate(data)
        self.online = {u.user_id: u for u in snapshot.users}

    def _typing_changed(self, data: Any) -> None:
        typing = TypingPayload.model_validate(data)
        if typing.user_id == self.me:
            return
        if not typing.is_typing:
            self._typing.pop(typing.user_id, None)
            return
        self._typing[typing.user_id] = TypingIndicator(
            user_id=typing.user_id,
            username=typing.username,
            display_name=typing.display_name,
            last_seen=self._clock(),
        )


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff with jitter, as python-socketio applies it.

    attempts=0 means retry forever.
    """

    attempts: int = 0
    delay: float = 1.0
    delay_max: float = 30.0
    randomization_factor: float = 0.5

    @classmethod
    def from_settings(cls) -> "ReconnectPolicy":
        return cls(
            attempts=settings.reconnection_attempts,
            delay=settings.reconnection_delay,
            delay_max=settings.reconnection_delay_max,
        )

    def base_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt N (1-based), without jitter."""
        return min(self.delay * 2 ** (attempt - 1), self.delay_max)

    def client_options(self) -> dict:
        return {
            "reconnection": True,
            "reconnection_attempts": self.attempts,
            "reconnection_delay": self.delay,
            "reconnection_delay_max": self.delay_max,
            "randomization_factor": self.randomization_factor,
        }


EventCallback = Callable[[str, Any], Optional[Awaitable[None]]]


class RealtimeClient:
    """Socket.IO client for the murmur namespace.

    Usage:
        client = RealtimeClient("http://localhost:3001", token)
        await client.connect()
        await client.wait()
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        state: Optional[FeedState] = None,
        on_event: Optional[EventCallback] = None,
        policy: Optional[ReconnectPolicy] = None,
        namespace: str = settings.socketio_namespace,
        socketio_path: str = settings.socketio_path,
        cookie_name: str = settings.auth_cookie_name,
    ):
        self.base_url = base_url
        self.token = token
        self.state = state or FeedState()
        self.on_event = on_event
        self.policy = policy or ReconnectPolicy.from_settings()
        self.namespace = namespace
        self.socketio_path = socketio_path
        self.cookie_name = cookie_name
        self.sio = socketio.AsyncClient(logger=False, **self.policy.client_options())

        self.sio.on("connect", self._on_connect, namespace=namespace)
        self.sio.on("disconnect", self._on_disconnect, namespace=namespace)
        self.sio.on("connect_error", self._on_connect_error, namespace=namespace)
        for event in SERVER_EVENTS:
            self.sio.on(event, self._handler_for(event), namespace=namespace)

    async def connect(self) -> None:
        await self.sio.connect(
            self.base_url,
            headers={"Cookie": f"{self.cookie_name}={self.token}"},
            namespaces=[self.namespace],
            socketio_path=self.socketio_path,
            transports=["websocket", "polling"],
        )

    async def wait(self) -> None:
        await self.sio.wait()

    async def disconnect(self) -> None:
        await self.sio.disconnect()

    async def typing_start(self, content: Optional[str] = None) -> None:
        payload = {"content": content} if content is not None else {}
        await self.sio.emit(TYPING_START, payload, namespace=self.namespace)

    async def typing_stop(self, final_length: Optional[int] = None) -> None:
        payload = {"finalLength": final_length} if final_length is not None else {}
        await self.sio.emit(TYPING_STOP, payload, namespace=self.namespace)

    async def request_presence(self) -> None:
        await self.sio.emit(GET_ONLINE, namespace=self.namespace)

    # ─── Handlers ────────────────────────────────────────

    async def _on_connect(self) -> None:
        logger.info("realtime_client.connected", url=self.base_url)
        # Anything missed while offline is gone; start from a fresh snapshot.
        await self.request_presence()

    async def _on_disconnect(self, *args: Any) -> None:
        logger.info("realtime_client.disconnected", reason=args[0] if args else None)

    async def _on_connect_error(self, data: Any = None) -> None:
        logger.warning("realtime_client.connect_error", data=data)

    def _handler_for(self, event: str):
        async def handler(data: Any = None) -> None:
            self.state.apply(event, data)
            if self.on_event is not None:
                result = self.on_event(event, data)
                if result is not None:
                    await result
        return handler
