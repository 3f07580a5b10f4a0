"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies (database, Redis) are reachable. Redis is optional, so a
missing Redis is reported but doesn't make the service "degraded".
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from murmur import __version__
from murmur.db.engine import get_db
from murmur.middleware.rate_limit import get_redis

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    redis = get_redis()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"

    gateway = getattr(request.app.state, "gateway", None)
    online = len(gateway.presence) if gateway is not None else 0

    return {"status": status, **checks, "onlineUsers": online}
