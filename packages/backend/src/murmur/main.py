"""FastAPI application factory, wrapped in the Socket.IO ASGI app.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, realtime state,
database). Middleware, CORS, and routers are all registered here.

The realtime side is built in two explicit phases, in order:
1. the Socket.IO AsyncServer
2. the Broadcaster, given the server handle, then the RealtimeGateway,
   which registers its namespace handlers on the server

Both objects hang off app.state so the REST routes (notifier, presence
endpoint) reach the very same instances the socket handlers use.

uvicorn serves `murmur.main:app` — the Socket.IO ASGIApp, which answers
/socket.io/ itself and hands every other path to the FastAPI app (`api`).
"""

from contextlib import asynccontextmanager
from typing import Optional

import socketio
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from murmur import __version__
from murmur.api import api_router
from murmur.config import settings
from murmur.db.engine import async_session_factory, engine
from murmur.middleware.rate_limit import RateLimitMiddleware, close_redis, init_redis
from murmur.middleware.request_id import RequestIdMiddleware
from murmur.middleware.security import SecurityHeadersMiddleware
from murmur.realtime.broadcaster import Broadcaster
from murmur.realtime.credentials import JwtCredentialVerifier
from murmur.realtime.gateway import RealtimeGateway

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    logger.info(
        "murmur.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        namespace=settings.socketio_namespace,
    )

    try:
        await init_redis()
        logger.info("murmur.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis only backs rate limiting; run without it.
        logger.warning("murmur.redis_unavailable", error=str(e))

    yield

    logger.info("murmur.shutdown", online_users=len(app.state.gateway.presence))
    app.state.gateway.close()
    await close_redis()
    await engine.dispose()


def create_socket_server() -> socketio.AsyncServer:
    """Phase 1: the transport."""
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.cors_origins,
        cors_credentials=True,
        ping_interval=settings.ping_interval,
        ping_timeout=settings.ping_timeout,
        # Accept the namespace before the connect handler runs, so the
        # presence snapshot emitted from that handler reaches the new socket.
        # A refusal is then sent as an immediate disconnect.
        always_connect=True,
        logger=False,
        engineio_logger=False,
    )


def create_realtime(sio: socketio.AsyncServer) -> tuple[Broadcaster, RealtimeGateway]:
    """Phase 2: broadcaster and gateway, wired to the server from phase 1."""
    broadcaster = Broadcaster(
        sio,
        namespace=settings.socketio_namespace,
        room=settings.broadcast_room,
    )
    gateway = RealtimeGateway(
        sio,
        broadcaster,
        JwtCredentialVerifier(async_session_factory),
        namespace=settings.socketio_namespace,
        room=settings.broadcast_room,
        cookie_name=settings.auth_cookie_name,
    )
    gateway.register()
    return broadcaster, gateway


def create_app(sio: Optional[socketio.AsyncServer] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Murmur",
        description="Short posts, likes, and a live feed with presence",
        version=__version__,
        lifespan=lifespan,
    )

    sio = sio or create_socket_server()
    broadcaster, gateway = create_realtime(sio)
    app.state.sio = sio
    app.state.broadcaster = broadcaster
    app.state.gateway = gateway

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, force_hsts=settings.is_production)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app


def create_asgi_app(api: FastAPI) -> socketio.ASGIApp:
    """Serve Socket.IO and the REST API from one ASGI callable."""
    return socketio.ASGIApp(
        api.state.sio,
        other_asgi_app=api,
        socketio_path=settings.socketio_path,
    )


# Default instances (uvicorn: murmur.main:app)
api = create_app()
app = create_asgi_app(api)
