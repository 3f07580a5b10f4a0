"""Pydantic schemas for posts and pagination."""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from murmur.schemas.base import CamelModel

MAX_PAGE_SIZE = 50


class PostCreate(CamelModel):
    content: str = Field(..., min_length=1, max_length=280)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v


class AuthorRead(CamelModel):
    id: int
    username: str
    display_name: str


class PostRead(CamelModel):
    id: int
    content: str
    created_at: datetime
    updated_at: datetime
    author: AuthorRead
    like_count: int = 0
    # Only set when the caller is authenticated.
    is_liked_by_current_user: Optional[bool] = None


class Pagination(CamelModel):
    total: int
    page: int
    page_size: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, page_size: int) -> "Pagination":
        offset = (page - 1) * page_size
        return cls(
            total=total,
            page=page,
            page_size=page_size,
            has_next=offset + page_size < total,
            has_prev=page > 1,
        )


class PaginatedPosts(CamelModel):
    posts: list[PostRead]
    pagination: Pagination


class PostEnvelope(CamelModel):
    post: PostRead
    message: str


class PostCount(CamelModel):
    user_id: int
    post_count: int
