"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Unlike a fully private API, most reads here are open (anyone can
browse the timeline). Auth is therefore declared per route with
Depends(get_current_user) / get_current_user_optional rather than on
include_router.
"""

from fastapi import APIRouter

from murmur.api.auth import router as auth_router
from murmur.api.health import router as health_router
from murmur.api.likes import router as likes_router
from murmur.api.posts import router as posts_router
from murmur.api.realtime import router as realtime_router
from murmur.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(likes_router, tags=["likes"])
api_router.include_router(posts_router, tags=["posts"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(realtime_router, tags=["realtime"])
