"""Test fixtures — in-memory database, HTTP clients, and a fake Socket.IO server.

Learn: Testing pattern for async SQLAlchemy + FastAPI + Socket.IO:

1. Each test gets a fresh in-memory SQLite database (aiosqlite), with the
   schema created straight from the ORM metadata. No Postgres needed.
2. The HTTP clients talk to the FastAPI app through httpx's ASGITransport
   and share the test's session via dependency_overrides.
3. The realtime notifier is swapped for a RecordingNotifier, so CRUD tests
   can assert on what would have been broadcast.
4. Gateway tests drive RealtimeGateway against FakeSocketServer, which
   records every emit together with the sids that would have received it.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from murmur.api.deps import get_notifier
from murmur.auth.dependencies import get_current_user, get_current_user_optional
from murmur.auth.jwt import TokenClaims, create_access_token, verify_token
from murmur.db.engine import get_db
from murmur.db.models import Base
from murmur.main import api
from murmur.realtime.broadcaster import Broadcaster
from murmur.realtime.credentials import Identity
from murmur.realtime.gateway import RealtimeGateway
from murmur.services.user_service import UserService

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

NAMESPACE = "/sns"
ROOM = "main"
COOKIE_NAME = "access_token"


# ─── Database ───────────────────────────────────────────


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def alice(db_session):
    return await UserService(db_session).register(
        "alice", "Alice Johnson", "alice@example.com", "password123"
    )


@pytest_asyncio.fixture()
async def bob(db_session):
    return await UserService(db_session).register(
        "bob", "Bob Smith", "bob@example.com", "password123"
    )


# ─── Notifier ───────────────────────────────────────────


class RecordingNotifier:
    """EventNotifier that remembers what it was asked to broadcast."""

    def __init__(self):
        self.events: list[tuple[str, Any]] = []

    async def notify_post_created(self, payload):
        self.events.append(("post:created", payload))

    async def notify_post_deleted(self, payload):
        self.events.append(("post:deleted", payload))

    async def notify_post_liked(self, payload):
        self.events.append(("post:liked", payload))

    async def notify_post_unliked(self, payload):
        self.events.append(("post:unliked", payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture()
def notifier():
    return RecordingNotifier()


# ─── HTTP clients ───────────────────────────────────────


@pytest_asyncio.fixture()
async def client(db_session, alice, notifier):
    """HTTP client logged in as alice.

    Learn: get_current_user is overridden to return alice directly, so
    tests don't need to log in first. The real cookie flow is covered by
    `unauthenticated_client`.
    """
    async def override_get_db():
        yield db_session

    api.dependency_overrides[get_db] = override_get_db
    api.dependency_overrides[get_current_user] = lambda: alice
    api.dependency_overrides[get_current_user_optional] = lambda: alice
    api.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=api)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    api.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(db_session, notifier):
    """HTTP client WITHOUT auth override — exercises the real cookie/JWT path."""
    async def override_get_db():
        yield db_session

    api.dependency_overrides[get_db] = override_get_db
    api.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=api)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    api.dependency_overrides.clear()


# ─── Fake Socket.IO server ──────────────────────────────


@dataclass
class Emitted:
    event: str
    data: Any
    to: Optional[str]
    skip_sid: Optional[str]
    namespace: Optional[str]
    recipients: frozenset


class FakeSocketServer:
    """The slice of socketio.AsyncServer the broadcaster and gateway use."""

    def __init__(self):
        self.handlers: dict[tuple[Optional[str], str], Any] = {}
        self.rooms: dict[str, set[str]] = defaultdict(set)
        self.emitted: list[Emitted] = []
        self.fail = False

    def on(self, event, handler=None, namespace=None):
        self.handlers[(namespace, event)] = handler

    async def emit(self, event, data=None, to=None, room=None, skip_sid=None, namespace=None):
        if self.fail:
            raise RuntimeError("transport down")
        target = to or room
        members = self.rooms[target] if target in self.rooms else {target}
        recipients = frozenset(sid for sid in members if sid != skip_sid)
        self.emitted.append(Emitted(event, data, target, skip_sid, namespace, recipients))

    async def enter_room(self, sid, room, namespace=None):
        self.rooms[room].add(sid)

    async def leave_room(self, sid, room, namespace=None):
        self.rooms[room].discard(sid)

    def received(self, sid: str) -> list[tuple[str, Any]]:
        """Every (event, data) delivered to `sid`, in order."""
        return [(e.event, e.data) for e in self.emitted if sid in e.recipients]

    def events(self, name: str) -> list[Emitted]:
        return [e for e in self.emitted if e.event == name]

    def clear(self):
        self.emitted.clear()


class StubVerifier:
    """Real JWT verification, users from a dict instead of the database.

    Setting `gate` holds resolve_user() until the event is set, which lets
    a test close the socket while its credential is being checked.
    """

    def __init__(self, identities: list[Identity]):
        self.users = {i.user_id: i for i in identities}
        self.gate: Optional[asyncio.Event] = None

    def verify_token(self, token: str) -> TokenClaims:
        return verify_token(token)

    async def resolve_user(self, user_id: int) -> Optional[Identity]:
        if self.gate is not None:
            await self.gate.wait()
        return self.users.get(user_id)


ALICE = Identity(user_id=1, username="alice", display_name="Alice Johnson")
BOB = Identity(user_id=2, username="bob", display_name="Bob Smith")
CHARLIE = Identity(user_id=3, username="charlie", display_name="Charlie Brown")


def token_for(identity: Identity) -> str:
    return create_access_token(
        identity.user_id, identity.username, f"{identity.username}@example.com"
    )


def environ_for(token: Optional[str]) -> dict:
    """The environ python-socketio hands to the connect handler."""
    if token is None:
        return {}
    return {"HTTP_COOKIE": f"theme=dark; {COOKIE_NAME}={token}"}


@pytest.fixture()
def identities():
    return {"alice": ALICE, "bob": BOB, "charlie": CHARLIE}


@pytest.fixture()
def sio():
    return FakeSocketServer()


@pytest.fixture()
def verifier(identities):
    return StubVerifier(list(identities.values()))


@pytest.fixture()
def broadcaster(sio):
    return Broadcaster(sio, namespace=NAMESPACE, room=ROOM)


@pytest.fixture()
def gateway(sio, broadcaster, verifier):
    gw = RealtimeGateway(
        sio,
        broadcaster,
        verifier,
        namespace=NAMESPACE,
        room=ROOM,
        cookie_name=COOKIE_NAME,
    )
    gw.register()
    yield gw
    gw.close()


@pytest.fixture()
def connect(gateway, identities):
    """connect("s1", "alice") → run the connect handler with alice's cookie."""
    async def _connect(sid: str, username: Optional[str]):
        token = token_for(identities[username]) if username else None
        return await gateway.on_connect(sid, environ_for(token))
    return _connect
