"""Like service — like/unlike a post, like status, likers.

Learn: Every like event carries the absolute like count, re-counted after
the commit. Clients replace their number with it, so duplicated or
reordered events settle on the right value.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from murmur.db.models import Like, Post, User
from murmur.realtime.broadcaster import EventNotifier
from murmur.realtime.events import PostLikeChanged
from murmur.schemas.like import LikerRead, LikeStatus, PaginatedLikes
from murmur.schemas.post import AuthorRead, Pagination
from murmur.services.post_service import PostNotFoundError


class AlreadyLikedError(Exception):
    pass


class LikeNotFoundError(Exception):
    pass


@dataclass
class LikeResult:
    post_id: int
    is_liked: bool
    like_count: int


class LikeService:
    """Business logic for likes."""

    def __init__(self, db: AsyncSession, notifier: Optional[EventNotifier] = None):
        self.db = db
        self.notifier = notifier

    async def like_post(self, post_id: int, user: User) -> LikeResult:
        await self._require_post(post_id)
        if await self._find_like(post_id, user.id):
            raise AlreadyLikedError(f"Post {post_id} already liked")

        self.db.add(Like(user_id=user.id, post_id=post_id))
        await self.db.commit()

        result = LikeResult(post_id, True, await self.like_count(post_id))
        if self.notifier:
            await self.notifier.notify_post_liked(self._event(result, user))
        return result

    async def unlike_post(self, post_id: int, user: User) -> LikeResult:
        await self._require_post(post_id)
        if not await self._find_like(post_id, user.id):
            raise LikeNotFoundError(f"Post {post_id} is not liked")

        await self.db.execute(
            delete(Like).where(Like.post_id == post_id, Like.user_id == user.id)
        )
        await self.db.commit()

        result = LikeResult(post_id, False, await self.like_count(post_id))
        if self.notifier:
            await self.notifier.notify_post_unliked(self._event(result, user))
        return result

    async def get_status(self, post_id: int, user_id: int) -> LikeStatus:
        await self._require_post(post_id)
        return LikeStatus(
            post_id=post_id,
            is_liked=await self._find_like(post_id, user_id) is not None,
            like_count=await self.like_count(post_id),
        )

    async def list_likers(
        self, post_id: int, page: int = 1, page_size: int = 20
    ) -> PaginatedLikes:
        """Most recent likers first."""
        await self._require_post(post_id)
        total = await self.like_count(post_id)
        result = await self.db.execute(
            select(Like)
            .where(Like.post_id == post_id)
            .options(selectinload(Like.user))
            .order_by(Like.created_at.desc(), Like.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        likes = [
            LikerRead(
                id=like.id,
                user=AuthorRead.model_validate(like.user),
                created_at=like.created_at,
            )
            for like in result.scalars().all()
        ]
        return PaginatedLikes(
            likes=likes, pagination=Pagination.build(total, page, page_size)
        )

    async def like_count(self, post_id: int) -> int:
        count = await self.db.scalar(
            select(func.count(Like.id)).where(Like.post_id == post_id)
        )
        return count or 0

    async def count_user_likes(self, user_id: int) -> int:
        count = await self.db.scalar(
            select(func.count(Like.id)).where(Like.user_id == user_id)
        )
        return count or 0

    # ─── Internals ───────────────────────────────────────

    async def _require_post(self, post_id: int) -> None:
        exists = await self.db.scalar(select(Post.id).where(Post.id == post_id))
        if exists is None:
            raise PostNotFoundError(f"Post {post_id} not found")

    async def _find_like(self, post_id: int, user_id: int) -> Optional[Like]:
        result = await self.db.execute(
            select(Like).where(Like.post_id == post_id, Like.user_id == user_id)
        )
        return result.scalars().first()

    @staticmethod
    def _event(result: LikeResult, user: User) -> PostLikeChanged:
        return PostLikeChanged(
            post_id=result.post_id,
            user_id=user.id,
            username=user.username,
            like_count=result.like_count,
            is_liked=result.is_liked,
        )
