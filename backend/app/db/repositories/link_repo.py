"""Link repository."""

import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError, violated_constraint
from app.db.models import Link

logger = logging.getLogger(__name__)


async def get_link_by_id(db: AsyncSession, link_id: str) -> Link | None:
    """Get a link by ID (not tenant-scoped; callers check ownership)."""
    try:
        result = await db.execute(select(Link).where(Link.id == link_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_link_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting link {link_id}: {e}")
        raise DatabaseError(f"Failed to get link: {e}") from e


async def get_link_by_slug(db: AsyncSession, slug: str) -> Link | None:
    """Get a link by slug (slugs are stored lower-case)."""
    try:
        result = await db.execute(select(Link).where(func.lower(Link.slug) == slug.lower()))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_link_by_slug: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting link by slug {slug!r}: {e}")
        raise DatabaseError(f"Failed to get link: {e}") from e


async def get_links_by_workspace(db: AsyncSession, workspace_id: str) -> list[Link]:
    """Get all links of a workspace, newest first."""
    try:
        result = await db.execute(
            select(Link).where(Link.workspace_id == workspace_id).order_by(Link.created_at.desc())
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_links_by_workspace: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing links for workspace {workspace_id}: {e}")
        raise DatabaseError(f"Failed to list links: {e}") from e


async def insert_link(db: AsyncSession, link: Link) -> Link:
    """Insert a link row."""
    try:
        db.add(link)
        await db.flush()
        await db.refresh(link)
        return link
    except IntegrityError as e:
        logger.error(f"Duplicate link slug {link.slug!r}: {e}")
        raise DuplicateRecordError(
            f"Link with slug {link.slug!r} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_link: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating link: {e}")
        raise DatabaseError(f"Failed to create link: {e}") from e


async def delete_link(db: AsyncSession, link_id: str) -> bool:
    """Delete a link; its permissions go with it via ON DELETE CASCADE."""
    try:
        result = await db.execute(
            delete(Link).where(Link.id == link_id).execution_options(synchronize_session=False)
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_link: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting link {link_id}: {e}")
        raise DatabaseError(f"Failed to delete link: {e}") from e


async def update_link(db: AsyncSession, link: Link, values: dict[str, object]) -> Link:
    """Apply ``values`` to a link row."""
    try:
        for column, value in values.items():
            setattr(link, column, value)
        link.updated_at = datetime.utcnow()
        await db.flush()
        await db.refresh(link)
        return link
    except IntegrityError as e:
        logger.error(f"Duplicate link slug {link.slug!r} updating link {link.id}: {e}")
        raise DuplicateRecordError(
            f"Link with slug {link.slug!r} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in update_link: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error updating link {link.id}: {e}")
        raise DatabaseError(f"Failed to update link: {e}") from e
