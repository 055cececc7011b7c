"""Permission repository."""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError, violated_constraint
from app.db.models import Permission

logger = logging.getLogger(__name__)


async def get_permission(db: AsyncSession, link_id: str, email: str) -> Permission | None:
    """Get the permission for ``(link_id, email)``."""
    try:
        result = await db.execute(
            select(Permission).where(Permission.link_id == link_id, Permission.email == email.lower())
        )
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_permission: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting permission on link {link_id}: {e}")
        raise DatabaseError(f"Failed to get permission: {e}") from e


async def get_permissions_by_link(db: AsyncSession, link_id: str) -> list[Permission]:
    """Get all permissions of a link in creation order."""
    try:
        result = await db.execute(
            select(Permission)
            .where(Permission.link_id == link_id)
            .order_by(Permission.created_at, Permission.email)
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_permissions_by_link: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing permissions for link {link_id}: {e}")
        raise DatabaseError(f"Failed to list permissions: {e}") from e


async def insert_permission(db: AsyncSession, link_id: str, email: str, role: str) -> Permission:
    """Insert a permission row."""
    try:
        permission = Permission(link_id=link_id, email=email.lower(), role=role)
        db.add(permission)
        await db.flush()
        await db.refresh(permission)
        return permission
    except IntegrityError as e:
        logger.error(f"Duplicate permission for {email} on link {link_id}: {e}")
        raise DuplicateRecordError(
            f"Permission for {email} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_permission: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating permission: {e}")
        raise DatabaseError(f"Failed to create permission: {e}") from e


async def update_permission_role(db: AsyncSession, permission_id: str, role: str) -> bool:
    """Change the role of a permission."""
    try:
        result = await db.execute(
            update(Permission)
            .where(Permission.id == permission_id)
            .values(role=role, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in update_permission_role: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error updating permission {permission_id}: {e}")
        raise DatabaseError(f"Failed to update permission: {e}") from e


async def delete_permission(db: AsyncSession, permission_id: str) -> bool:
    """Delete a permission. Returns True if deleted."""
    try:
        result = await db.execute(
            delete(Permission)
            .where(Permission.id == permission_id)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_permission: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting permission {permission_id}: {e}")
        raise DatabaseError(f"Failed to delete permission: {e}") from e
