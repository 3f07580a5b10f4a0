"""Socket.IO gateway — connection lifecycle and client messages.

Learn: One gateway per process owns the realtime state:
- sessions: sid → ConnectionSession (identity of each authenticated socket)
- presence: who is online (PresenceTable)
- typing:   which sessions are composing (TypingTable)

Handler flow:
1. connect    → authenticate cookie → presence add → join "main"
                → user:connected to others (first tab only)
                → users:online to everyone, self included
2. disconnect → presence remove → typing:stop if mid-draft
                → user:disconnected (last tab only) → users:online
3. typing:start / typing:stop → re-broadcast to everyone else
4. users:get-online → snapshot to the requester only
5. join / leave → enter/leave the broadcast room

Unauthenticated sockets never get this far: connect raises
ConnectionRefusedError and the transport drops them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from socketio.exceptions import ConnectionRefusedError

from murmur.realtime.broadcaster import Broadcaster
from murmur.realtime.credentials import (
    AuthRejected,
    CredentialVerifier,
    Identity,
    authenticate,
    cookie_header_from_environ,
)
from murmur.realtime.events import (
    GET_ONLINE,
    JOIN,
    LEAVE,
    TYPING_START,
    TYPING_STOP,
    ErrorEvent,
    PresenceSnapshot,
    RoomRequest,
    TypingPayload,
    TypingStartRequest,
    TypingStopRequest,
    UserConnected,
    UserDisconnected,
    utcnow,
)
from murmur.realtime.presence import PresenceTable, TypingTable

logger = structlog.get_logger()


@dataclass
class ConnectionSession:
    session_id: str
    identity: Identity
    joined_group_at: datetime


class RealtimeGateway:
    """Registers namespace handlers on a Socket.IO server."""

    def __init__(
        self,
        server: Any,
        broadcaster: Broadcaster,
        verifier: CredentialVerifier,
        *,
        namespace: str,
        room: str,
        cookie_name: str,
        presence: Optional[PresenceTable] = None,
        typing: Optional[TypingTable] = None,
    ):
        self.server = server
        self.broadcaster = broadcaster
        self.verifier = verifier
        self.namespace = namespace
        self.room = room
        self.cookie_name = cookie_name
        self.presence = presence or PresenceTable()
        self.typing = typing or TypingTable()
        self.sessions: dict[str, ConnectionSession] = {}
        # Sockets whose credential is still being verified.
        self._pending: set[str] = set()

    def register(self) -> None:
        """Attach every handler to the namespace."""
        handlers = {
            "connect": self.on_connect,
            "disconnect": self.on_disconnect,
            JOIN: self.on_join,
            LEAVE: self.on_leave,
            TYPING_START: self.on_typing_start,
            TYPING_STOP: self.on_typing_stop,
            GET_ONLINE: self.on_get_online,
        }
        for event, handler in handlers.items():
            self.server.on(event, handler, namespace=self.namespace)

    def snapshot(self) -> PresenceSnapshot:
        return self.presence.snapshot()

    def close(self) -> None:
        """Drop all in-memory state (process shutdown, test isolation)."""
        self.sessions.clear()
        self._pending.clear()
        self.presence.clear()
        self.typing.clear()

    # ─── Connection lifecycle ────────────────────────────

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> Optional[bool]:
        self._pending.add(sid)
        try:
            identity = await authenticate(
                self.verifier,
                cookie_header_from_environ(environ),
                self.cookie_name,
            )
        except AuthRejected as e:
            self._pending.discard(sid)
            logger.warning(
                "realtime.connect_rejected", sid=sid, reason=e.reason, detail=e.detail
            )
            raise ConnectionRefusedError(e.reason) from e
        except Exception as e:
            self._pending.discard(sid)
            logger.exception("realtime.connect_error", sid=sid)
            raise ConnectionRefusedError("server_error") from e

        if sid not in self._pending:
            # The socket closed while we were verifying it.
            logger.info("realtime.connect_abandoned", sid=sid, user_id=identity.user_id)
            return False
        self._pending.discard(sid)

        await self._admit(sid, identity)
        return None

    async def _admit(self, sid: str, identity: Identity) -> None:
        self.sessions[sid] = ConnectionSession(
            session_id=sid, identity=identity, joined_group_at=utcnow()
        )
        came_online = self.presence.add(identity, sid)
        await self.server.enter_room(sid, self.room, namespace=self.namespace)

        logger.info(
            "realtime.connected",
            sid=sid,
            user_id=identity.user_id,
            username=identity.username,
            sessions=self.presence.session_count(identity.user_id),
        )

        if came_online:
            entry = self.presence.get(identity.user_id)
            await self.broadcaster.user_connected(
                UserConnected(
                    user_id=identity.user_id,
                    username=identity.username,
                    display_name=identity.display_name,
                    connected_at=entry.connected_at,
                ),
                skip_sid=sid,
            )
        await self.broadcaster.presence_snapshot(self.presence.snapshot())

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        self._pending.discard(sid)
        session = self.sessions.pop(sid, None)
        if session is None:
            return  # never authenticated, or already cleaned up

        identity = session.identity
        was_typing = self.typing.stop(sid)
        went_offline = self.presence.remove(identity.user_id, sid) is not None

        logger.info(
            "realtime.disconnected",
            sid=sid,
            user_id=identity.user_id,
            reason=str(reason) if reason is not None else None,
            offline=went_offline,
        )

        if was_typing:
            await self.broadcaster.typing(self._typing_payload(identity, False), skip_sid=sid)
        if went_offline:
            await self.broadcaster.user_disconnected(
                UserDisconnected(
                    user_id=identity.user_id,
                    username=identity.username,
                    display_name=identity.display_name,
                ),
                skip_sid=sid,
            )
        await self.broadcaster.presence_snapshot(self.presence.snapshot(), skip_sid=sid)

    # ─── Client messages ─────────────────────────────────

    async def on_typing_start(self, sid: str, data: Any = None) -> None:
        session = self.sessions.get(sid)
        if session is None:
            return
        try:
            TypingStartRequest.model_validate(data or {})
        except ValidationError as e:
            await self._reject_message(sid, TYPING_START, e)
            return

        self.typing.start(sid, session.identity.user_id)
        await self.broadcaster.typing(self._typing_payload(session.identity, True), skip_sid=sid)

    async def on_typing_stop(self, sid: str, data: Any = None) -> None:
        session = self.sessions.get(sid)
        if session is None:
            return
        try:
            TypingStopRequest.model_validate(data or {})
        except ValidationError as e:
            await self._reject_message(sid, TYPING_STOP, e)
            return

        self.typing.stop(sid)
        await self.broadcaster.typing(self._typing_payload(session.identity, False), skip_sid=sid)

    async def on_get_online(self, sid: str, data: Any = None) -> None:
        if sid not in self.sessions:
            return
        await self.broadcaster.presence_snapshot(self.presence.snapshot(), to=sid)

    async def on_join(self, sid: str, data: Any = None) -> Optional[dict]:
        room = await self._requested_room(sid, JOIN, data)
        if room is None:
            return None
        await self.server.enter_room(sid, room, namespace=self.namespace)
        return {"room": room, "joined": True}

    async def on_leave(self, sid: str, data: Any = None) -> Optional[dict]:
        room = await self._requested_room(sid, LEAVE, data)
        if room is None:
            return None
        await self.server.leave_room(sid, room, namespace=self.namespace)
        return {"room": room, "joined": False}

    # ─── Helpers ─────────────────────────────────────────

    async def _requested_room(self, sid: str, event: str, data: Any) -> Optional[str]:
        """Validate a join/leave payload. Only the broadcast room exists."""
        if sid not in self.sessions:
            return None
        if data is None:
            data = {"room": self.room}
        elif isinstance(data, str):
            data = {"room": data}

        try:
            room = RoomRequest.model_validate(data).room
        except ValidationError as e:
            await self._reject_message(sid, event, e)
            return None

        if room != self.room:
            await self.broadcaster.error(
                sid,
                ErrorEvent(
                    error="unknown_room",
                    message=f"Room '{room}' does not exist",
                    code="ROOM_NOT_FOUND",
                ),
            )
            return None
        return room

    async def _reject_message(self, sid: str, event: str, exc: ValidationError) -> None:
        logger.info("realtime.message_rejected", sid=sid, event_name=event, errors=exc.error_count())
        await self.broadcaster.error(
            sid,
            ErrorEvent(
                error="invalid_payload",
                message=f"Invalid payload for '{event}'",
                code="VALIDATION_ERROR",
            ),
        )

    @staticmethod
    def _typing_payload(identity: Identity, is_typing: bool) -> TypingPayload:
        return TypingPayload(
            user_id=identity.user_id,
            username=identity.username,
            display_name=identity.display_name,
            is_typing=is_typing,
        )
