"""Pydantic schemas for registration, login and user profiles.

Learn: Separate "Request" schemas (input) from "Read" schemas (output).
Field limits mirror the columns in db/models.py.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from murmur.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Za-z0-9_]+$")
    display_name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(CamelModel):
    identifier: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class UserRead(CamelModel):
    id: int
    username: str
    display_name: str
    email: str
    created_at: datetime


class AuthResponse(CamelModel):
    user: UserRead
    message: str


class AuthCheck(CamelModel):
    is_authenticated: bool
    user: Optional[UserRead] = None
