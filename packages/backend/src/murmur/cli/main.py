"""Murmur CLI — run the server, prepare the database, watch the live feed.

Usage:
    murmur serve                       # uvicorn murmur.main:app
    murmur init-db                     # Create tables from the ORM models
    murmur seed                        # Demo users (alice/bob/charlie) and posts
    murmur watch -u alice -p password123   # Log in and print realtime events
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Any, Optional

import click
import httpx

from murmur import __version__
from murmur.config import settings

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = f"http://localhost:{settings.port}"

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    ("alice", "Alice Johnson", "alice@example.com"),
    ("bob", "Bob Smith", "bob@example.com"),
    ("charlie", "Charlie Brown", "charlie@example.com"),
]

DEMO_POSTS = [
    ("alice", "Hello, world! This is my first post here."),
    ("bob", "Just had an amazing coffee at the local cafe. Perfect way to start the day!"),
    ("alice", "Working on some exciting new features. Can't wait to share them!"),
    ("charlie", "Beautiful sunset today. Nature never fails to amaze me."),
    ("bob", "Learning FastAPI and SQLAlchemy, such nice tools to work with."),
]

# (liker, index into DEMO_POSTS)
DEMO_LIKES = [("bob", 0), ("charlie", 0), ("alice", 1), ("alice", 3), ("charlie", 4)]

EVENT_COLORS = {
    "post:created": "green",
    "post:deleted": "red",
    "post:liked": "magenta",
    "post:unliked": "magenta",
    "user:connected": "cyan",
    "user:disconnected": "cyan",
    "users:online": "blue",
    "typing:start": "yellow",
    "typing:stop": "yellow",
    "error": "red",
}


def _api_url() -> str:
    return os.environ.get("MURMUR_API_URL", DEFAULT_API_URL).rstrip("/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles an already-running event loop (CliRunner inside async tests)
    by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def format_event(event: str, data: Any) -> str:
    """One line per event, colored by kind."""
    label = click.style(f"{event:18s}", fg=EVENT_COLORS.get(event, "white"))
    return f"{label} {json.dumps(data, ensure_ascii=False, default=str)}"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="murmur")
def main():
    """Murmur — short posts with a live feed, likes, and presence."""


@main.command()
@click.option("--host", default=settings.host, show_default=True)
@click.option("--port", default=settings.port, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the API and Socket.IO server."""
    import uvicorn

    uvicorn.run("murmur.main:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@main.command("init-db")
def init_db():
    """Create all tables (use Alembic for real deployments)."""
    _run(_init_db_impl())
    click.secho("Tables created.", fg="green")


async def _init_db_impl():
    from murmur.db.engine import engine
    from murmur.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@main.command()
def seed():
    """Insert demo users, posts, and likes. Existing users are kept."""
    created = _run(_seed_impl())
    click.secho(f"Seeded {created} new user(s).", fg="green")
    click.echo(f"Log in as alice, bob, or charlie with password '{DEMO_PASSWORD}'.")


async def _seed_impl() -> int:
    from sqlalchemy import select

    from murmur.db.engine import async_session_factory, engine
    from murmur.db.models import Like, Post, User
    from murmur.services.user_service import UserService

    created = 0
    async with async_session_factory() as db:
        users: dict[str, User] = {}
        for username, display_name, email in DEMO_USERS:
            result = await db.execute(select(User).where(User.username == username))
            user = result.scalars().first()
            if user is None:
                user = await UserService(db).register(
                    username, display_name, email, DEMO_PASSWORD
                )
                created += 1
            users[username] = user

        if created:
            posts = [
                Post(author_id=users[author].id, content=content)
                for author, content in DEMO_POSTS
            ]
            db.add_all(posts)
            await db.flush()
            db.add_all(
                Like(user_id=users[liker].id, post_id=posts[i].id)
                for liker, i in DEMO_LIKES
            )
            await db.commit()
    await engine.dispose()
    return created


# ---------------------------------------------------------------------------
# murmur watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--username", "-u", required=True, help="Username or email")
@click.option("--password", "-p", prompt=True, hide_input=True)
@click.option("--url", default=None, help="Server URL (or set MURMUR_API_URL)")
def watch(username: str, password: str, url: Optional[str]):
    """Log in and print realtime events until interrupted."""
    try:
        _run(_watch_impl(url or _api_url(), username, password))
    except KeyboardInterrupt:
        click.echo()


async def _watch_impl(base_url: str, identifier: str, password: str):
    from murmur.realtime.client import FeedState, RealtimeClient

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as c:
        r = await c.post(
            "/api/v1/auth/login",
            json={"identifier": identifier, "password": password},
        )
        if r.status_code != 200:
            click.secho(f"Login failed: {r.json().get('detail', r.text)}", fg="red", err=True)
            sys.exit(1)
        token = r.cookies.get(settings.auth_cookie_name)
        me = r.json()["user"]

    click.secho(f"Logged in as {me['displayName']} (@{me['username']})", bold=True)

    def on_event(event: str, data: Any) -> None:
        click.echo(format_event(event, data))

    client = RealtimeClient(base_url, token, state=FeedState(me=me["id"]), on_event=on_event)
    await client.connect()
    try:
        await client.wait()
    finally:
        await client.disconnect()


if __name__ == "__main__":
    main()
