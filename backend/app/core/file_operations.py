"""Single-file operations."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import DuplicateNameError, StorageFailureError
from app.core.ownership import require_workspace, verify_file_ownership, verify_folder_ownership, verify_link_ownership
from app.core.validation import validate_id, validate_input
from app.db.database import run_in_transaction
from app.db.models import File
from app.db.repositories import file_repo, user_repo
from app.models.file import FileCreate, FileRename
from app.services.identity import Caller
from app.services.object_store import ObjectStore

logger = logging.getLogger(__name__)


async def create_file_record(db: AsyncSession, caller: Caller, **fields: object) -> File:
    """Register an uploaded object as a file in the caller's workspace.

    Accepts the fields of ``FileCreate``. The storage counter of the owner is
    bumped in the same transaction as the insert.
    """
    data = validate_input(FileCreate, fields)
    workspace = await require_workspace(db, caller)
    if data.folder_id is not None:
        await verify_folder_ownership(db, caller, data.folder_id, workspace)
    if data.link_id is not None:
        await verify_link_ownership(db, caller, data.link_id, workspace)

    if await file_repo.find_file_by_name(db, workspace.id, data.folder_id, data.file_name):
        raise DuplicateNameError(f'A file named "{data.file_name}" already exists in this location', field="file_name")

    async def _insert(session: AsyncSession) -> File:
        file = await file_repo.insert_file(
            session,
            File(
                workspace_id=workspace.id,
                folder_id=data.folder_id,
                link_id=data.link_id,
                file_name=data.file_name,
                file_size=data.file_size,
                mime_type=data.mime_type,
                storage_path=data.storage_path,
                uploader_email=data.uploader_email,
                uploader_name=data.uploader_name,
            ),
        )
        await user_repo.adjust_storage_used(session, workspace.user_id, data.file_size)
        return file

    file = await run_in_transaction(db, "create_file_record", _insert, context={"workspace_id": workspace.id})
    logger.info("Registered file %s (%d bytes) in workspace %s", file.id, file.file_size, workspace.id)
    return file


async def delete_file(db: AsyncSession, caller: Caller, file_id: str, object_store: ObjectStore) -> str:
    """Delete one file: storage object first, then the row.

    If storage refuses, the row is kept and ``StorageFailureError`` propagates.
    """
    file_id = validate_id(file_id, "file_id")
    file, workspace = await verify_file_ownership(db, caller, file_id)

    try:
        await object_store.delete_file(file.storage_path, settings.storage_bucket)
    except StorageFailureError:
        logger.error("Storage deletion failed for file %s; keeping database row", file.id)
        raise

    size = file.file_size

    async def _delete(session: AsyncSession) -> None:
        await file_repo.delete_files(session, [file_id])
        await user_repo.adjust_storage_used(session, workspace.user_id, -size)

    await run_in_transaction(db, "delete_file", _delete, context={"file_id": file_id})
    logger.info("Deleted file %s from workspace %s", file_id, workspace.id)
    return file_id


async def list_files(
    db: AsyncSession, caller: Caller, folder_id: str | None = None, all_folders: bool = False
) -> list[File]:
    """Files of the caller's workspace: one folder, the root (default), or every folder."""
    workspace = await require_workspace(db, caller)
    if folder_id is not None:
        folder_id = validate_id(folder_id, "folder_id")
        await verify_folder_ownership(db, caller, folder_id, workspace)
    return await file_repo.get_files_by_workspace(db, workspace.id, folder_id, all_folders)


async def update_file(db: AsyncSession, caller: Caller, file_id: str, file_name: str) -> File:
    """Rename a file; the new name must be free in the file's folder."""
    data = validate_input(FileRename, {"file_id": file_id, "file_name": file_name})
    file, workspace = await verify_file_ownership(db, caller, data.file_id)
    if file.file_name == data.file_name:
        return file

    clash = await file_repo.find_file_by_name(db, workspace.id, file.folder_id, data.file_name)
    if clash is not None and clash.id != file.id:
        raise DuplicateNameError(f'A file named "{data.file_name}" already exists in this location', field="file_name")

    async def _rename(session: AsyncSession) -> File:
        return await file_repo.update_file_name(session, file, data.file_name)

    file = await run_in_transaction(db, "update_file", _rename, context={"file_id": file.id})
    logger.info("Renamed file %s", file.id)
    return file
