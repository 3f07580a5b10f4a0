"""User stats API."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.db.engine import get_db
from murmur.schemas.like import UserLikeCount
from murmur.services.like_service import LikeService

router = APIRouter(prefix="/users")


@router.get("/{user_id}/likes/count", response_model=UserLikeCount)
async def count_user_likes(user_id: int, db: AsyncSession = Depends(get_db)):
    """How many posts this user has liked."""
    count = await LikeService(db).count_user_likes(user_id)
    return UserLikeCount(user_id=user_id, like_count=count)
