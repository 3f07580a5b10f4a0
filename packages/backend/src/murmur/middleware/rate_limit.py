"""Rate limiting middleware — fixed per-minute window in Redis.

Learn: Each client IP gets one counter per minute, keyed
"murmur:rl:{ip}:{bucket}:{minute}". Login and registration share a much
stricter bucket than the rest of the API, which is what slows down
password guessing.

Redis is optional. The pool is opened in the app lifespan; if that
fails (or in tests) get_redis() returns None and requests pass through
unlimited. A Redis error mid-request also lets the request through.
"""

import time
from typing import Optional

import redis.asyncio as aioredis
import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from murmur.config import settings

logger = structlog.get_logger()

KEY_PREFIX = "murmur:rl"
AUTH_PATHS = ("/api/v1/auth/login", "/api/v1/auth/register")

# Shared pool, set up in main.lifespan
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Open the pool and check it answers. Raises if Redis is unreachable."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> Optional[aioredis.Redis]:
    return _redis


def bucket_for(path: str) -> str:
    return "auth" if path.startswith(AUTH_PATHS) else "api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request budget per minute."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        redis = get_redis()
        if redis is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        bucket = bucket_for(request.url.path)
        limit = self.auth_rpm if bucket == "auth" else self.default_rpm
        window = int(time.time() // 60)
        key = f"{KEY_PREFIX}:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            logger.warning("ratelimit.redis_error", error=str(e))
            return await call_next(request)

        if count > limit:
            logger.info("ratelimit.exceeded", ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(60 - int(time.time()) % 60)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
