"""User repository."""

import logging

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError, violated_constraint
from app.db.models import User

logger = logging.getLogger(__name__)


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Get a user by ID."""
    try:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_user_by_id for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting user {user_id}: {e}")
        raise DatabaseError(f"Failed to get user: {e}") from e


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Get a user by email (case-insensitive)."""
    try:
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_user_by_email for {email}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting user by email {email}: {e}")
        raise DatabaseError(f"Failed to get user: {e}") from e


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Get a user by username (case-insensitive)."""
    try:
        result = await db.execute(select(User).where(func.lower(User.username) == username.lower()))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_user_by_username for {username}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting user by username {username}: {e}")
        raise DatabaseError(f"Failed to get user: {e}") from e


async def insert_user(db: AsyncSession, user: User) -> User:
    """Insert a new user row."""
    try:
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user
    except IntegrityError as e:
        logger.error(f"Duplicate user {user.id}: {e}")
        raise DuplicateRecordError(
            f"User with email {user.email} or username {user.username} already exists",
            constraint=violated_constraint(e),
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_user: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating user: {e}")
        raise DatabaseError(f"Failed to create user: {e}") from e


async def adjust_storage_used(db: AsyncSession, user_id: str, delta: int) -> None:
    """Add ``delta`` bytes (negative to release) to the user's storage counter, floored at zero."""
    if delta == 0:
        return
    try:
        new_value = User.storage_used + delta
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(storage_used=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
    except OperationalError as e:
        logger.error(f"Database connection error in adjust_storage_used for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error adjusting storage for user {user_id}: {e}")
        raise DatabaseError(f"Failed to adjust storage usage: {e}") from e
