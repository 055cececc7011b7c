"""Folder repository."""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError, violated_constraint
from app.db.models import Folder

logger = logging.getLogger(__name__)


async def get_folder_by_id(db: AsyncSession, folder_id: str) -> Folder | None:
    """Get a single folder by ID (not tenant-scoped; callers check ownership)."""
    try:
        result = await db.execute(select(Folder).where(Folder.id == folder_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_folder_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to get folder: {e}") from e


async def get_folders_by_ids(db: AsyncSession, folder_ids: list[str]) -> list[Folder]:
    """Get every folder whose ID is in ``folder_ids``. Missing IDs are simply absent."""
    if not folder_ids:
        return []
    try:
        result = await db.execute(select(Folder).where(Folder.id.in_(folder_ids)))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_folders_by_ids: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting {len(folder_ids)} folders: {e}")
        raise DatabaseError(f"Failed to get folders: {e}") from e


async def get_root_folders(db: AsyncSession, workspace_id: str) -> list[Folder]:
    """Get folders with no parent in a workspace, ordered by sort_order then name."""
    try:
        result = await db.execute(
            select(Folder)
            .where(Folder.workspace_id == workspace_id, Folder.parent_folder_id.is_(None))
            .order_by(Folder.sort_order, Folder.name)
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_root_folders for workspace {workspace_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting root folders for workspace {workspace_id}: {e}")
        raise DatabaseError(f"Failed to get root folders: {e}") from e


async def get_child_folders(db: AsyncSession, workspace_id: str, parent_folder_id: str) -> list[Folder]:
    """Get the direct subfolders of a folder."""
    try:
        result = await db.execute(
            select(Folder)
            .where(Folder.workspace_id == workspace_id, Folder.parent_folder_id == parent_folder_id)
            .order_by(Folder.sort_order, Folder.name)
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_child_folders: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting children of folder {parent_folder_id}: {e}")
        raise DatabaseError(f"Failed to get child folders: {e}") from e


async def get_child_folder_rows(db: AsyncSession, parent_ids: list[str]) -> list[tuple[str, str, str]]:
    """Return ``(id, parent_folder_id, name)`` for every direct child of ``parent_ids``."""
    if not parent_ids:
        return []
    try:
        result = await db.execute(
            select(Folder.id, Folder.parent_folder_id, Folder.name)
            .where(Folder.parent_folder_id.in_(parent_ids))
        )
        return [(row[0], row[1], row[2]) for row in result.all()]
    except OperationalError as e:
        logger.error(f"Database connection error in get_child_folder_rows: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error walking {len(parent_ids)} folders: {e}")
        raise DatabaseError(f"Failed to get child folders: {e}") from e


async def find_sibling_by_name(
    db: AsyncSession,
    workspace_id: str,
    parent_folder_id: str | None,
    name: str,
    exclude_folder_id: str | None = None,
) -> Folder | None:
    """Find a folder with ``name`` under the same parent (or workspace root)."""
    try:
        stmt = select(Folder).where(Folder.workspace_id == workspace_id, Folder.name == name)
        if parent_folder_id is None:
            stmt = stmt.where(Folder.parent_folder_id.is_(None))
        else:
            stmt = stmt.where(Folder.parent_folder_id == parent_folder_id)
        if exclude_folder_id is not None:
            stmt = stmt.where(Folder.id != exclude_folder_id)
        result = await db.execute(stmt.limit(1))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in find_sibling_by_name: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error checking folder name {name!r}: {e}")
        raise DatabaseError(f"Failed to check folder name: {e}") from e


async def insert_folder(
    db: AsyncSession,
    workspace_id: str,
    name: str,
    parent_folder_id: str | None = None,
    sort_order: int = 0,
) -> Folder:
    """Insert a new folder."""
    try:
        folder = Folder(
            workspace_id=workspace_id,
            parent_folder_id=parent_folder_id,
            name=name,
            sort_order=sort_order,
        )
        db.add(folder)
        await db.flush()
        await db.refresh(folder)
        return folder
    except IntegrityError as e:
        logger.error(f"Duplicate folder {name!r} in workspace {workspace_id}: {e}")
        raise DuplicateRecordError(
            f"Folder {name!r} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating folder: {e}")
        raise DatabaseError(f"Failed to create folder: {e}") from e


async def update_folder_name(db: AsyncSession, folder: Folder, name: str) -> Folder:
    """Rename a folder."""
    try:
        folder.name = name
        folder.updated_at = datetime.utcnow()
        await db.flush()
        await db.refresh(folder)
        return folder
    except IntegrityError as e:
        logger.error(f"Duplicate folder name {name!r} for folder {folder.id}: {e}")
        raise DuplicateRecordError(
            f"Folder {name!r} already exists", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in update_folder_name: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error renaming folder {folder.id}: {e}")
        raise DatabaseError(f"Failed to rename folder: {e}") from e


async def update_folder_parent(db: AsyncSession, folder_id: str, parent_folder_id: str | None) -> bool:
    """Point a folder at a new parent. Returns True if a row was updated."""
    try:
        result = await db.execute(
            update(Folder)
            .where(Folder.id == folder_id)
            .values(parent_folder_id=parent_folder_id, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except IntegrityError as e:
        logger.error(f"Constraint violation moving folder {folder_id}: {e}")
        raise DuplicateRecordError(
            f"Folder {folder_id} conflicts with a sibling", constraint=violated_constraint(e)
        ) from e
    except OperationalError as e:
        logger.error(f"Database connection error in update_folder_parent: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error moving folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to move folder: {e}") from e


async def delete_folders(db: AsyncSession, folder_ids: list[str]) -> int:
    """Delete folders by ID; descendants and their files go with them via ON DELETE CASCADE."""
    if not folder_ids:
        return 0
    try:
        result = await db.execute(
            delete(Folder)
            .where(Folder.id.in_(folder_ids))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return int(result.rowcount or 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_folders: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting {len(folder_ids)} folders: {e}")
        raise DatabaseError(f"Failed to delete folders: {e}") from e
