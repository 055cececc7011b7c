"""File repository."""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.exceptions import ConnectionError, ConstraintViolationError, DatabaseError
from app.db.models import File

logger = logging.getLogger(__name__)


async def get_file_by_id(db: AsyncSession, file_id: str) -> File | None:
    """Get a single file by ID (not tenant-scoped; callers check ownership)."""
    try:
        result = await db.execute(select(File).where(File.id == file_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_file_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting file {file_id}: {e}")
        raise DatabaseError(f"Failed to get file: {e}") from e


async def get_files_by_ids(db: AsyncSession, file_ids: list[str]) -> list[File]:
    """Get every file whose ID is in ``file_ids``."""
    if not file_ids:
        return []
    try:
        result = await db.execute(select(File).where(File.id.in_(file_ids)))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_files_by_ids: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting {len(file_ids)} files: {e}")
        raise DatabaseError(f"Failed to get files: {e}") from e


async def get_files_in_folders(db: AsyncSession, folder_ids: list[str]) -> list[File]:
    """Get the files sitting directly in any of ``folder_ids``."""
    if not folder_ids:
        return []
    try:
        result = await db.execute(
            select(File).where(File.folder_id.in_(folder_ids)).order_by(File.file_name)
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_files_in_folders: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting files for {len(folder_ids)} folders: {e}")
        raise DatabaseError(f"Failed to get folder files: {e}") from e


async def find_file_by_name(
    db: AsyncSession,
    workspace_id: str,
    folder_id: str | None,
    file_name: str,
) -> File | None:
    """Find a file called ``file_name`` in a folder (or the workspace root)."""
    try:
        stmt = select(File).where(File.workspace_id == workspace_id, File.file_name == file_name)
        if folder_id is None:
            stmt = stmt.where(File.folder_id.is_(None))
        else:
            stmt = stmt.where(File.folder_id == folder_id)
        result = await db.execute(stmt.limit(1))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in find_file_by_name: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error checking file name {file_name!r}: {e}")
        raise DatabaseError(f"Failed to check file name: {e}") from e


async def get_files_by_workspace(
    db: AsyncSession, workspace_id: str, folder_id: str | None = None, all_folders: bool = False
) -> list[File]:
    """List files of a workspace, one folder (None = root) or all of them, by name."""
    try:
        stmt = select(File).where(File.workspace_id == workspace_id)
        if not all_folders:
            stmt = stmt.where(File.folder_id.is_(None) if folder_id is None else File.folder_id == folder_id)
        result = await db.execute(stmt.order_by(File.file_name, File.created_at))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_files_by_workspace: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing files for workspace {workspace_id}: {e}")
        raise DatabaseError(f"Failed to list files: {e}") from e


async def insert_file(db: AsyncSession, file: File) -> File:
    """Insert a file metadata row."""
    try:
        db.add(file)
        await db.flush()
        await db.refresh(file)
        return file
    except IntegrityError as e:
        logger.error(f"Constraint violation inserting file {file.file_name!r}: {e}")
        raise ConstraintViolationError(f"File {file.file_name!r} references a missing folder or link") from e
    except OperationalError as e:
        logger.error(f"Database connection error in insert_file: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating file: {e}")
        raise DatabaseError(f"Failed to create file: {e}") from e


async def update_file_folder(db: AsyncSession, file_id: str, folder_id: str | None) -> bool:
    """Move a file into another folder (None for the workspace root)."""
    try:
        result = await db.execute(
            update(File)
            .where(File.id == file_id)
            .values(folder_id=folder_id, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in update_file_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error moving file {file_id}: {e}")
        raise DatabaseError(f"Failed to move file: {e}") from e


async def update_file_name(db: AsyncSession, file: File, file_name: str) -> File:
    """Rename a file."""
    try:
        file.file_name = file_name
        file.updated_at = datetime.utcnow()
        await db.flush()
        await db.refresh(file)
        return file
    except OperationalError as e:
        logger.error(f"Database connection error in update_file_name: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error renaming file {file.id}: {e}")
        raise DatabaseError(f"Failed to rename file: {e}") from e


async def delete_files(db: AsyncSession, file_ids: list[str]) -> int:
    """Delete file rows by ID. Returns the number of rows removed."""
    if not file_ids:
        return 0
    try:
        result = await db.execute(
            delete(File)
            .where(File.id.in_(file_ids))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return int(result.rowcount or 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_files: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting {len(file_ids)} files: {e}")
        raise DatabaseError(f"Failed to delete files: {e}") from e
