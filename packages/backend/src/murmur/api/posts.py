"""Posts API — the timeline.

Learn: Reads are open, writes need a logged-in user. Write routes hand
the realtime notifier to the service, which calls it after the commit:
the HTTP response and the `post:*` broadcast describe the same row.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.api.deps import get_notifier
from murmur.auth.dependencies import get_current_user, get_current_user_optional
from murmur.db.engine import get_db
from murmur.db.models import User
from murmur.realtime.broadcaster import EventNotifier
from murmur.schemas.base import MessageResponse
from murmur.schemas.post import (
    MAX_PAGE_SIZE,
    PaginatedPosts,
    PostCount,
    PostCreate,
    PostEnvelope,
)
from murmur.services.post_service import (
    NotPostAuthorError,
    PostNotFoundError,
    PostService,
)

router = APIRouter(prefix="/posts")


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
) -> PostService:
    return PostService(db, notifier)


def _viewer_id(user: Optional[User]) -> Optional[int]:
    return user.id if user else None


@router.post("", response_model=PostEnvelope, status_code=201)
async def create_post(
    body: PostCreate,
    user: User = Depends(get_current_user),
    svc: PostService = Depends(_svc),
):
    post = await svc.create_post(author=user, content=body.content)
    return PostEnvelope(post=post, message="Post created")


@router.get("", response_model=PaginatedPosts)
async def list_posts(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    search: Optional[str] = Query(None, max_length=280),
    user_id: Optional[int] = Query(None, alias="userId"),
    user: Optional[User] = Depends(get_current_user_optional),
    svc: PostService = Depends(_svc),
):
    return await svc.list_posts(
        page=page,
        page_size=page_size,
        search=search,
        user_id=user_id,
        current_user_id=_viewer_id(user),
    )


# ─── Per-user ───────────────────────────────────────────


@router.get("/user/{user_id}", response_model=PaginatedPosts)
async def list_user_posts(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    user: Optional[User] = Depends(get_current_user_optional),
    svc: PostService = Depends(_svc),
):
    return await svc.list_posts(
        page=page,
        page_size=page_size,
        user_id=user_id,
        current_user_id=_viewer_id(user),
    )


@router.get("/user/{user_id}/count", response_model=PostCount)
async def count_user_posts(user_id: int, svc: PostService = Depends(_svc)):
    return PostCount(user_id=user_id, post_count=await svc.count_user_posts(user_id))


# ─── Single post ────────────────────────────────────────


@router.get("/{post_id}", response_model=PostEnvelope)
async def get_post(
    post_id: int,
    user: Optional[User] = Depends(get_current_user_optional),
    svc: PostService = Depends(_svc),
):
    try:
        post = await svc.get_post(post_id, current_user_id=_viewer_id(user))
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    return PostEnvelope(post=post, message="Post found")


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: int,
    user: User = Depends(get_current_user),
    svc: PostService = Depends(_svc),
):
    try:
        await svc.delete_post(post_id, user_id=user.id)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except NotPostAuthorError:
        raise HTTPException(status_code=403, detail="You can only delete your own posts")
    return MessageResponse(message="Post deleted")
