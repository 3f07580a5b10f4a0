"""Pydantic schemas for likes."""

from datetime import datetime

from murmur.schemas.base import CamelModel
from murmur.schemas.post import AuthorRead, Pagination


class LikeResponse(CamelModel):
    """Result of a like/unlike. `id` is the post id."""
    id: int
    is_liked: bool
    like_count: int
    message: str


class LikeStatus(CamelModel):
    post_id: int
    is_liked: bool
    like_count: int


class LikerRead(CamelModel):
    id: int
    user: AuthorRead
    created_at: datetime


class PaginatedLikes(CamelModel):
    likes: list[LikerRead]
    pagination: Pagination


class UserLikeCount(CamelModel):
    user_id: int
    like_count: int
