"""Likes API — like/unlike, status, and who liked a post."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.api.deps import get_notifier
from murmur.auth.dependencies import get_current_user
from murmur.db.engine import get_db
from murmur.db.models import User
from murmur.realtime.broadcaster import EventNotifier
from murmur.schemas.like import LikeResponse, LikeStatus, PaginatedLikes
from murmur.schemas.post import MAX_PAGE_SIZE
from murmur.services.like_service import (
    AlreadyLikedError,
    LikeNotFoundError,
    LikeService,
)
from murmur.services.post_service import PostNotFoundError

router = APIRouter(prefix="/posts/{post_id}/likes")


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
) -> LikeService:
    return LikeService(db, notifier)


@router.post("", response_model=LikeResponse, status_code=201)
async def like_post(
    post_id: int,
    user: User = Depends(get_current_user),
    svc: LikeService = Depends(_svc),
):
    try:
        result = await svc.like_post(post_id, user)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except AlreadyLikedError:
        raise HTTPException(status_code=409, detail="Already liked")
    return LikeResponse(
        id=post_id, is_liked=True, like_count=result.like_count, message="Liked"
    )


@router.delete("", response_model=LikeResponse)
async def unlike_post(
    post_id: int,
    user: User = Depends(get_current_user),
    svc: LikeService = Depends(_svc),
):
    try:
        result = await svc.unlike_post(post_id, user)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except LikeNotFoundError:
        raise HTTPException(status_code=404, detail="Like not found")
    return LikeResponse(
        id=post_id, is_liked=False, like_count=result.like_count, message="Unliked"
    )


@router.get("/status", response_model=LikeStatus)
async def like_status(
    post_id: int,
    user: User = Depends(get_current_user),
    svc: LikeService = Depends(_svc),
):
    try:
        return await svc.get_status(post_id, user.id)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")


@router.get("", response_model=PaginatedLikes)
async def list_likers(
    post_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    svc: LikeService = Depends(_svc),
):
    try:
        return await svc.list_likers(post_id, page=page, page_size=page_size)
    except PostNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
