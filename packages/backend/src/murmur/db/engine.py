"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.
The realtime credential verifier opens its own sessions from the same factory,
since Socket.IO handlers live outside FastAPI's dependency system.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from murmur.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (local dev) manages its own pool; pool sizing only applies to Postgres.
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 15}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
