from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from duelqueue.config import logger
from duelqueue.data.schemas import User
from duelqueue.errors import DatabaseException, ResourceNotFoundException

user_logger = logger.getChild("user")


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User:
    """Get a user by ID from the database."""
    try:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        user_logger.error(f"Error retrieving user {user_id}: {str(e)}")
        raise DatabaseException(detail="Failed to retrieve user due to database error")
    if not user:
        user_logger.warning(f"User not found: ID {user_id}")
        raise ResourceNotFoundException(detail="User not found")
    return user


async def get_user_rating(db: AsyncSession, user_id: UUID) -> int:
    """Current rating of a user, read once when they join the queue."""
    user = await get_user_by_id(db, user_id)
    return user.rating
