"""Workspace repository."""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError, violated_constraint
from app.db.models import Workspace

logger = logging.getLogger(__name__)


async def get_workspace_by_user(db: AsyncSession, user_id: str) -> Workspace | None:
    """Get the workspace owned by a user."""
    try:
        result = await db.execute(select(Workspace).where(Workspace.user_id == user_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_workspace_by_user for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting workspace for user {user_id}: {e}")
        raise DatabaseError(f"Failed to get workspace: {e}") from e


async def count_workspaces_for_user(db: AsyncSession, user_id: str) -> int:
    """Count workspaces owned by a user (0 or 1 while the unique constraint holds)."""
    try:
        result = await db.execute(
            select(func.count()).select_from(Workspace).where(Workspace.user_id == user_id)
        )
        return int(result.scalar_one())
    except OperationalError as e:
        logger.error(f"Database connection error in count_workspaces_for_user: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error counting workspaces for user {user_id}: {e}")
        raise DatabaseError(f"Failed to count workspaces: {e}") from e


async def insert_workspace(db: AsyncSession, user_id: str, name: str) -> Workspace:
    """Insert the workspace row for a user."""
    try:
        workspace = Workspace(user_id=user_id, name=name)
        db.add(workspace)
        await db.flush()
        await db.refresh(workspace)
        return workspace
    except IntegrityError as e:
        logger.error(f"Duplicate workspace for user {user_id}: {e}")
        raise DuplicateRecordError(
            f"Workspace for user {user_id} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_workspace: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating workspace: {e}")
        raise DatabaseError(f"Failed to create workspace: {e}") from e
