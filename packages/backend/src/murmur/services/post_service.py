"""Post service — create, list, fetch, and delete posts.

Learn: Writes commit first, then notify. The notifier (the realtime
Broadcaster in production) only ever hears about rows that exist, and a
failed broadcast can't roll anything back because it happens after the
transaction is closed.
"""

from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from murmur.db.models import Like, Post, User
from murmur.realtime.broadcaster import EventNotifier
from murmur.realtime.events import PostCreated, PostDeleted
from murmur.schemas.post import AuthorRead, PaginatedPosts, Pagination, PostRead


class PostNotFoundError(Exception):
    pass


class NotPostAuthorError(Exception):
    """Only the author may delete a post."""


def _like_count_column():
    return (
        select(func.count(Like.id))
        .where(Like.post_id == Post.id)
        .correlate(Post)
        .scalar_subquery()
        .label("like_count")
    )


def _to_read(post: Post, like_count: int, liked: Optional[bool] = None) -> PostRead:
    return PostRead(
        id=post.id,
        content=post.content,
        created_at=post.created_at,
        updated_at=post.updated_at,
        author=AuthorRead.model_validate(post.author),
        like_count=like_count,
        is_liked_by_current_user=liked,
    )


class PostService:
    """Business logic for posts."""

    def __init__(self, db: AsyncSession, notifier: Optional[EventNotifier] = None):
        self.db = db
        self.notifier = notifier

    async def create_post(self, author: User, content: str) -> PostRead:
        post = Post(content=content, author_id=author.id)
        self.db.add(post)
        await self.db.commit()

        result = PostRead(
            id=post.id,
            content=post.content,
            created_at=post.created_at,
            updated_at=post.updated_at,
            author=AuthorRead.model_validate(author),
            like_count=0,
        )
        if self.notifier:
            await self.notifier.notify_post_created(
                PostCreated(
                    id=result.id,
                    content=result.content,
                    author=result.author,
                    created_at=result.created_at,
                    like_count=0,
                )
            )
        return result

    async def list_posts(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        user_id: Optional[int] = None,
        current_user_id: Optional[int] = None,
    ) -> PaginatedPosts:
        """Newest first. `search` is a substring match on content."""
        filters = []
        if search:
            filters.append(Post.content.contains(search, autoescape=True))
        if user_id is not None:
            filters.append(Post.author_id == user_id)

        total = await self.db.scalar(
            select(func.count(Post.id)).where(*filters)
        )

        q = (
            select(Post, _like_count_column())
            .where(*filters)
            .options(selectinload(Post.author))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = (await self.db.execute(q)).all()

        liked_ids = await self._liked_post_ids(
            current_user_id, [post.id for post, _ in rows]
        )
        posts = [
            _to_read(
                post,
                like_count,
                (post.id in liked_ids) if current_user_id is not None else None,
            )
            for post, like_count in rows
        ]
        return PaginatedPosts(
            posts=posts,
            pagination=Pagination.build(total or 0, page, page_size),
        )

    async def get_post(
        self, post_id: int, current_user_id: Optional[int] = None
    ) -> PostRead:
        q = (
            select(Post, _like_count_column())
            .where(Post.id == post_id)
            .options(selectinload(Post.author))
        )
        row = (await self.db.execute(q)).first()
        if row is None:
            raise PostNotFoundError(f"Post {post_id} not found")

        post, like_count = row
        liked = None
        if current_user_id is not None:
            liked = post.id in await self._liked_post_ids(current_user_id, [post.id])
        return _to_read(post, like_count, liked)

    async def delete_post(self, post_id: int, user_id: int) -> None:
        author_id = await self.db.scalar(
            select(Post.author_id).where(Post.id == post_id)
        )
        if author_id is None:
            raise PostNotFoundError(f"Post {post_id} not found")
        if author_id != user_id:
            raise NotPostAuthorError(f"User {user_id} did not write post {post_id}")

        await self.db.execute(delete(Like).where(Like.post_id == post_id))
        await self.db.execute(delete(Post).where(Post.id == post_id))
        await self.db.commit()

        if self.notifier:
            await self.notifier.notify_post_deleted(
                PostDeleted(id=post_id, author_id=author_id)
            )

    async def count_user_posts(self, user_id: int) -> int:
        count = await self.db.scalar(
            select(func.count(Post.id)).where(Post.author_id == user_id)
        )
        return count or 0

    async def _liked_post_ids(
        self, user_id: Optional[int], post_ids: list[int]
    ) -> set[int]:
        if user_id is None or not post_ids:
            return set()
        result = await self.db.execute(
            select(Like.post_id).where(
                Like.user_id == user_id, Like.post_id.in_(post_ids)
            )
        )
        return set(result.scalars().all())
