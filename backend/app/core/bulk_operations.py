"""Bulk move, delete and download across a mixed selection of files and folders."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateNameError, StorageFailureError, ValidationError
from app.core.folder_hierarchy import (
    check_relocation,
    collect_subtree,
    delete_storage_objects,
    resolve_target_folder,
)
from app.core.ownership import require_workspace, verify_files_owned, verify_folders_owned
from app.core.validation import validate_input
from app.db.database import run_in_transaction
from app.db.exceptions import DuplicateRecordError
from app.db.models import File
from app.db.repositories import file_repo, folder_repo, user_repo
from app.models.file import BulkMove, BulkSelection
from app.services.archive import ArchiveEntry, Fetcher, build_zip_archive, unique_archive_path
from app.services.identity import Caller
from app.services.object_store import ObjectStore, fetch_bytes

logger = logging.getLogger(__name__)


@dataclass
class MoveMixedResult:
    requested_file_count: int
    requested_folder_count: int
    moved_file_count: int
    moved_folder_count: int


@dataclass
class DeleteMixedResult:
    requested_file_count: int
    requested_folder_count: int
    deleted_file_count: int
    deleted_folder_count: int
    deleted_nested_file_count: int = 0
    failed_file_ids: list[str] = field(default_factory=list)
    failed_folder_ids: list[str] = field(default_factory=list)


@dataclass
class BulkDownloadResult:
    archive: bytes
    entries: list[ArchiveEntry]
    file_name: str


async def bulk_download(
    db: AsyncSession,
    caller: Caller,
    file_ids: list[str],
    folder_ids: list[str],
    object_store: ObjectStore,
    fetch: Fetcher | None = None,
) -> BulkDownloadResult:
    """Pack the selected files, and every file under the selected folders, into one ZIP.

    Directly selected files sit at the archive root; folder contents keep
    their folder path. Any missing or foreign ID fails the whole call.
    """
    data = validate_input(BulkSelection, {"file_ids": file_ids, "folder_ids": folder_ids})
    workspace = await require_workspace(db, caller)
    files = await verify_files_owned(db, workspace, data.file_ids)
    folders = await verify_folders_owned(db, workspace, data.folder_ids)

    used_paths: set[str] = set()
    seen: set[str] = set()
    entries: list[ArchiveEntry] = []

    def _add(file: File, path: str) -> None:
        seen.add(file.id)
        entries.append(
            ArchiveEntry(
                file_id=file.id,
                archive_path=unique_archive_path(path, used_paths),
                storage_path=file.storage_path,
                file_size=file.file_size,
                mime_type=file.mime_type,
            )
        )

    for file in files:
        _add(file, file.file_name)

    for folder in folders:
        paths = {sub.id: sub.path for sub in await collect_subtree(db, folder)}
        for file in await file_repo.get_files_in_folders(db, list(paths)):
            if file.id not in seen:
                _add(file, f"{paths[file.folder_id]}/{file.file_name}")

    if not entries:
        raise ValidationError("The selection does not contain any files to download")

    archive = await build_zip_archive(entries, object_store, fetch or fetch_bytes)
    logger.info("Bulk download of %d file(s) for workspace %s", len(entries), workspace.id)
    return BulkDownloadResult(
        archive=archive,
        entries=entries,
        file_name=f"download-{datetime.utcnow():%Y%m%d-%H%M%S}.zip",
    )


async def move_mixed(
    db: AsyncSession,
    caller: Caller,
    file_ids: list[str],
    folder_ids: list[str],
    target_folder_id: str | None,
) -> MoveMixedResult:
    """Move files and folders into one target, all or nothing.

    Every move is validated before anything is written. Items already in the
    target count as requested but not moved.
    """
    data = validate_input(
        BulkMove, {"file_ids": file_ids, "folder_ids": folder_ids, "target_folder_id": target_folder_id}
    )
    workspace = await require_workspace(db, caller)
    target = await resolve_target_folder(db, caller, workspace, data.target_folder_id)
    target_id = target.id if target is not None else None
    files = await verify_files_owned(db, workspace, data.file_ids)
    folders = await verify_folders_owned(db, workspace, data.folder_ids)

    claimed_folder_names: set[str] = set()
    folder_moves: list[str] = []
    for folder in folders:
        if await check_relocation(db, folder, target, claimed_folder_names):
            claimed_folder_names.add(folder.name)
            folder_moves.append(folder.id)

    claimed_file_names: set[str] = set()
    file_moves: list[str] = []
    for file in files:
        if file.folder_id == target_id:
            continue
        clash = await file_repo.find_file_by_name(db, workspace.id, target_id, file.file_name)
        if clash is not None or file.file_name in claimed_file_names:
            raise DuplicateNameError(f'A file named "{file.file_name}" already exists in the destination')
        claimed_file_names.add(file.file_name)
        file_moves.append(file.id)

    async def _apply(session: AsyncSession) -> None:
        for folder_id in folder_moves:
            await folder_repo.update_folder_parent(session, folder_id, target_id)
        for file_id in file_moves:
            await file_repo.update_file_folder(session, file_id, target_id)

    if folder_moves or file_moves:
        try:
            await run_in_transaction(
                db,
                "move_mixed",
                _apply,
                context={"files": len(file_moves), "folders": len(folder_moves), "target": target_id},
            )
        except DuplicateRecordError as e:
            raise DuplicateNameError("An item with the same name already exists in the destination") from e

    logger.info(
        "Moved %d/%d file(s) and %d/%d folder(s) to %s",
        len(file_moves), len(files), len(folder_moves), len(folders), target_id or "root",
    )
    return MoveMixedResult(
        requested_file_count=len(files),
        requested_folder_count=len(folders),
        moved_file_count=len(file_moves),
        moved_folder_count=len(folder_moves),
    )


async def delete_mixed(
    db: AsyncSession,
    caller: Caller,
    file_ids: list[str],
    folder_ids: list[str],
    object_store: ObjectStore,
) -> DeleteMixedResult:
    """Delete files and folders, storage first, tolerating per-item storage failures.

    A folder row is removed only when every file in its subtree left storage.
    File rows are removed for exactly the files whose storage object is gone.
    ``StorageFailureError`` is raised only if nothing at all could be deleted.
    """
    data = validate_input(BulkSelection, {"file_ids": file_ids, "folder_ids": folder_ids})
    workspace = await require_workspace(db, caller)
    files = await verify_files_owned(db, workspace, data.file_ids)
    folders = await verify_folders_owned(db, workspace, data.folder_ids)

    # Each selected folder's full file set; nested selections share files, so
    # storage targets are de-duplicated by file ID.
    folder_file_ids: dict[str, list[str]] = {}
    targets: dict[str, File] = {f.id: f for f in files}
    for folder in folders:
        subtree_ids = [sub.id for sub in await collect_subtree(db, folder)]
        contained = await file_repo.get_files_in_folders(db, subtree_ids)
        folder_file_ids[folder.id] = [f.id for f in contained]
        for f in contained:
            targets.setdefault(f.id, f)

    target_files = list(targets.values())
    outcomes = await delete_storage_objects(object_store, target_files)
    removed = {f.id for f, error in zip(target_files, outcomes) if error is None}
    for f, error in zip(target_files, outcomes):
        if error is not None:
            logger.warning("Storage deletion failed for file %s: %s", f.id, error)

    direct_ids = {f.id for f in files}
    deleted_folders = [fid for fid in folder_file_ids if all(x in removed for x in folder_file_ids[fid])]
    failed_folders = [fid for fid in folder_file_ids if fid not in deleted_folders]
    freed = sum(f.file_size for f in target_files if f.id in removed)

    result = DeleteMixedResult(
        requested_file_count=len(files),
        requested_folder_count=len(folders),
        deleted_file_count=len(direct_ids & removed),
        deleted_folder_count=len(deleted_folders),
        deleted_nested_file_count=len(removed - direct_ids),
        failed_file_ids=[f.id for f in files if f.id not in removed],
        failed_folder_ids=failed_folders,
    )

    async def _remove_rows(session: AsyncSession) -> None:
        await file_repo.delete_files(session, list(removed))
        await folder_repo.delete_folders(session, deleted_folders)
        await user_repo.adjust_storage_used(session, workspace.user_id, -freed)

    if removed or deleted_folders:
        await run_in_transaction(
            db,
            "delete_mixed",
            _remove_rows,
            context={"files": len(removed), "folders": len(deleted_folders)},
        )

    if not removed and not deleted_folders:
        logger.error("Bulk delete removed nothing for workspace %s", workspace.id)
        raise StorageFailureError("Failed to delete any of the selected items")

    logger.info(
        "Bulk delete: %d/%d file(s), %d/%d folder(s) for workspace %s",
        result.deleted_file_count, len(files), result.deleted_folder_count, len(folders), workspace.id,
    )
    return result
