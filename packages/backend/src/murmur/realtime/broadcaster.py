"""Event fan-out — the single place that pushes events to clients.

Learn: Emission is fire-and-forget. If the transport fails to send, the
failure is logged and swallowed: the REST response for the action that
triggered the event has already been decided, and a broadcast problem
must never turn a committed write into an error.

The Broadcaster is built with the Socket.IO server handle injected
(see main.create_app) — it never goes looking for the server itself.
"""

from typing import Any, Optional, Protocol

import structlog

from murmur.realtime.events import (
    ERROR,
    POST_CREATED,
    POST_DELETED,
    POST_LIKED,
    POST_UNLIKED,
    TYPING_START,
    TYPING_STOP,
    USER_CONNECTED,
    USER_DISCONNECTED,
    USERS_ONLINE,
    ErrorEvent,
    EventPayload,
    PostCreated,
    PostDeleted,
    PostLikeChanged,
    PresenceSnapshot,
    TypingPayload,
    UserConnected,
    UserDisconnected,
)

logger = structlog.get_logger()


class EventNotifier(Protocol):
    """What CRUD services call after committing a write."""

    async def notify_post_created(self, payload: PostCreated) -> None: ...

    async def notify_post_deleted(self, payload: PostDeleted) -> None: ...

    async def notify_post_liked(self, payload: PostLikeChanged) -> None: ...

    async def notify_post_unliked(self, payload: PostLikeChanged) -> None: ...


class Broadcaster:
    """Emits domain events to the broadcast room of one namespace."""

    def __init__(self, server: Any, namespace: str, room: str):
        self.server = server
        self.namespace = namespace
        self.room = room

    async def emit(
        self,
        event: str,
        payload: EventPayload,
        *,
        to: Optional[str] = None,
        skip_sid: Optional[str] = None,
    ) -> bool:
        """Send one event. Returns False (after logging) if the send failed."""
        try:
            await self.server.emit(
                event,
                payload.wire(),
                to=to or self.room,
                skip_sid=skip_sid,
                namespace=self.namespace,
            )
        except Exception as e:
            logger.warning(
                "realtime.broadcast_failed",
                event_name=event,
                to=to or self.room,
                error=str(e),
            )
            return False
        return True

    # ─── Domain events (CRUD bridge) ─────────────────────
    # Always the whole room, actor included: clients reconcile their
    # optimistic state against the echo.

    async def notify_post_created(self, payload: PostCreated) -> None:
        await self.emit(POST_CREATED, payload)

    async def notify_post_deleted(self, payload: PostDeleted) -> None:
        await self.emit(POST_DELETED, payload)

    async def notify_post_liked(self, payload: PostLikeChanged) -> None:
        await self.emit(POST_LIKED, payload)

    async def notify_post_unliked(self, payload: PostLikeChanged) -> None:
        await self.emit(POST_UNLIKED, payload)

    # ─── Presence & typing (gateway) ─────────────────────

    async def user_connected(self, payload: UserConnected, skip_sid: str) -> None:
        await self.emit(USER_CONNECTED, payload, skip_sid=skip_sid)

    async def user_disconnected(
        self, payload: UserDisconnected, skip_sid: Optional[str] = None
    ) -> None:
        await self.emit(USER_DISCONNECTED, payload, skip_sid=skip_sid)

    async def presence_snapshot(
        self,
        snapshot: PresenceSnapshot,
        *,
        to: Optional[str] = None,
        skip_sid: Optional[str] = None,
    ) -> None:
        await self.emit(USERS_ONLINE, snapshot, to=to, skip_sid=skip_sid)

    async def typing(self, payload: TypingPayload, skip_sid: str) -> None:
        event = TYPING_START if payload.is_typing else TYPING_STOP
        await self.emit(event, payload, skip_sid=skip_sid)

    async def error(self, sid: str, payload: ErrorEvent) -> None:
        await self.emit(ERROR, payload, to=sid)
