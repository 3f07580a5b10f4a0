"""In-memory presence and typing state.

Learn: Presence is keyed by user id, but a user can have several tabs
open. Each entry therefore keeps the set of session ids attributed to
that user:

- the first session makes the user "online" (connectedAt is set once)
- extra sessions only join the set
- the user goes offline when the last session leaves

All mutations are synchronous — there is no await between reading and
writing an entry, so interleaved handlers on the event loop cannot
corrupt the map. Removing an unknown session is a no-op.

Both tables are owned by one RealtimeGateway per process; nothing here
is a module-level singleton.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from murmur.realtime.credentials import Identity
from murmur.realtime.events import OnlineUser, PresenceSnapshot, utcnow


@dataclass
class PresenceEntry:
    user_id: int
    username: str
    display_name: str
    connected_at: datetime
    session_ids: set[str] = field(default_factory=set)


class PresenceTable:
    """Users with at least one open authenticated session."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._entries: dict[int, PresenceEntry] = {}

    def add(self, identity: Identity, session_id: str) -> bool:
        """Attribute a session to a user. True if the user just came online."""
        entry = self._entries.get(identity.user_id)
        if entry is not None:
            entry.session_ids.add(session_id)
            return False

        self._entries[identity.user_id] = PresenceEntry(
            user_id=identity.user_id,
            username=identity.username,
            display_name=identity.display_name,
            connected_at=self._clock(),
            session_ids={session_id},
        )
        return True

    def remove(self, user_id: int, session_id: str) -> Optional[PresenceEntry]:
        """Detach a session. Returns the entry if the user just went offline."""
        entry = self._entries.get(user_id)
        if entry is None or session_id not in entry.session_ids:
            return None

        entry.session_ids.discard(session_id)
        if entry.session_ids:
            return None
        return self._entries.pop(user_id)

    def get(self, user_id: int) -> Optional[PresenceEntry]:
        return self._entries.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._entries

    def session_count(self, user_id: int) -> int:
        entry = self._entries.get(user_id)
        return len(entry.session_ids) if entry else 0

    def snapshot(self) -> PresenceSnapshot:
        """Full list of online users, in order of arrival."""
        users = [
            OnlineUser(
                user_id=e.user_id,
                username=e.username,
                display_name=e.display_name,
            )
            for e in self._entries.values()
        ]
        return PresenceSnapshot(users=users, count=len(users))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries


class TypingTable:
    """Which sessions are currently composing a post.

    Only "is typing" is stored; stopping removes the flag. Broadcasts do
    not depend on it — it exists so a session that disconnects mid-draft
    can be announced as stopped.
    """

    def __init__(self):
        self._typing: dict[str, int] = {}  # session id → user id

    def start(self, session_id: str, user_id: int) -> None:
        self._typing[session_id] = user_id

    def stop(self, session_id: str) -> bool:
        """Clear the flag. True if the session was typing."""
        return self._typing.pop(session_id, None) is not None

    def is_typing(self, session_id: str) -> bool:
        return session_id in self._typing

    def typing_user_ids(self) -> set[int]:
        return set(self._typing.values())

    def clear(self) -> None:
        self._typing.clear()

    def __len__(self) -> int:
        return len(self._typing)
