"""Folder tree operations.

Tree invariants, checked on every create/rename/move:

* depth (0 for root folders) stays below ``settings.max_nesting_depth``;
* sibling folders (same workspace, same parent or both at root) have distinct
  names;
* a folder is never its own ancestor.

Depth is never stored. It is recomputed from the ancestor chain, and every
walk up or down the tree is bounded by the maximum depth, so a corrupted
parent pointer cannot make a walk loop forever.
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import (
    CircularReferenceError,
    DuplicateNameError,
    NestingDepthExceededError,
    StorageFailureError,
)
from app.core.ownership import require_workspace, verify_folder_ownership
from app.core.validation import validate_id, validate_input
from app.db.database import run_in_transaction
from app.db.exceptions import DatabaseError, DuplicateRecordError
from app.db.models import File, Folder, Workspace
from app.db.repositories import file_repo, folder_repo, user_repo
from app.models.folder import FolderCreate, FolderMove, FolderRename
from app.services.identity import Caller
from app.services.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class FolderMoveResult:
    folder: Folder
    moved_count: int


@dataclass
class FolderDeleteResult:
    folder_id: str
    deleted_folder_count: int
    deleted_file_count: int


@dataclass
class SubtreeFolder:
    """A folder inside a subtree, with its path relative to the subtree's parent."""

    id: str
    path: str


def max_depth() -> int:
    return settings.max_nesting_depth


# ---------------------------------------------------------------------------
# Tree walks
# ---------------------------------------------------------------------------

async def get_ancestor_chain(db: AsyncSession, folder: Folder) -> list[Folder]:
    """Return the chain from the root down to ``folder`` itself."""
    limit = max_depth()
    chain = [folder]
    current = folder
    while current.parent_folder_id is not None:
        if len(chain) > limit:
            raise DatabaseError(f"Ancestry of folder {folder.id} exceeds {limit} levels")
        parent = await folder_repo.get_folder_by_id(db, current.parent_folder_id)
        if parent is None:
            raise DatabaseError(f"Folder {current.id} points at missing parent {current.parent_folder_id}")
        chain.append(parent)
        current = parent
    chain.reverse()
    return chain


async def folder_depth(db: AsyncSession, folder: Folder) -> int:
    return len(await get_ancestor_chain(db, folder)) - 1


async def _target_depth_excluding(db: AsyncSession, folder_id: str, target: Folder) -> int:
    """Depth of ``target``, failing fast if ``folder_id`` is one of its ancestors (or itself)."""
    limit = max_depth()
    current: Folder | None = target
    depth = 0
    while current is not None:
        if current.id == folder_id:
            raise CircularReferenceError()
        if current.parent_folder_id is None:
            return depth
        depth += 1
        if depth > limit:
            raise DatabaseError(f"Ancestry of folder {target.id} exceeds {limit} levels")
        current = await folder_repo.get_folder_by_id(db, current.parent_folder_id)
    raise DatabaseError(f"Folder {target.id} has a dangling parent reference")


async def subtree_height(db: AsyncSession, folder_id: str) -> int:
    """Number of folder levels below ``folder_id`` (0 for a folder with no subfolders)."""
    limit = max_depth()
    frontier = [folder_id]
    height = 0
    while True:
        rows = await folder_repo.get_child_folder_rows(db, frontier)
        if not rows:
            return height
        height += 1
        if height > limit:
            raise DatabaseError(f"Subtree of folder {folder_id} exceeds {limit} levels")
        frontier = [row[0] for row in rows]


async def collect_subtree(db: AsyncSession, folder: Folder) -> list[SubtreeFolder]:
    """Every folder in the subtree rooted at ``folder`` (itself first), breadth first."""
    limit = max_depth()
    collected = [SubtreeFolder(id=folder.id, path=folder.name)]
    paths = {folder.id: folder.name}
    frontier = [folder.id]
    for _ in range(limit + 1):
        rows = await folder_repo.get_child_folder_rows(db, frontier)
        if not rows:
            return collected
        frontier = []
        for child_id, parent_id, name in rows:
            paths[child_id] = f"{paths[parent_id]}/{name}"
            collected.append(SubtreeFolder(id=child_id, path=paths[child_id]))
            frontier.append(child_id)
    raise DatabaseError(f"Subtree of folder {folder.id} exceeds {limit} levels")


async def check_relocation(
    db: AsyncSession,
    folder: Folder,
    target: Folder | None,
    claimed_names: set[str] | None = None,
) -> bool:
    """Validate moving ``folder`` under ``target`` (None = root).

    Returns False when the folder already sits there. Raises
    ``CircularReferenceError``, ``NestingDepthExceededError`` or
    ``DuplicateNameError``. ``claimed_names`` holds names already promised to
    other items moving into the same target in the same operation.
    """
    target_id = target.id if target is not None else None
    if target_id == folder.parent_folder_id:
        return False
    if target_id == folder.id:
        raise CircularReferenceError()

    target_depth = -1
    if target is not None:
        target_depth = await _target_depth_excluding(db, folder.id, target)

    limit = max_depth()
    new_depth = target_depth + 1
    if new_depth + await subtree_height(db, folder.id) >= limit:
        raise NestingDepthExceededError(limit)

    sibling = await folder_repo.find_sibling_by_name(
        db, folder.workspace_id, target_id, folder.name, exclude_folder_id=folder.id
    )
    if sibling is not None or (claimed_names is not None and folder.name in claimed_names):
        raise DuplicateNameError(f'A folder named "{folder.name}" already exists in the destination')
    return True


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def create_folder(
    db: AsyncSession,
    caller: Caller,
    name: str,
    parent_folder_id: str | None = None,
    sort_order: int = 0,
) -> Folder:
    """Create a folder at the workspace root or under ``parent_folder_id``."""
    data = validate_input(
        FolderCreate, {"name": name, "parent_folder_id": parent_folder_id, "sort_order": sort_order}
    )
    workspace = await require_workspace(db, caller)

    depth = 0
    if data.parent_folder_id is not None:
        parent, _ = await verify_folder_ownership(db, caller, data.parent_folder_id, workspace)
        depth = await folder_depth(db, parent) + 1
    if depth >= max_depth():
        raise NestingDepthExceededError(max_depth())

    if await folder_repo.find_sibling_by_name(db, workspace.id, data.parent_folder_id, data.name):
        raise DuplicateNameError(f'A folder named "{data.name}" already exists in this location', field="name")

    async def _insert(session: AsyncSession) -> Folder:
        return await folder_repo.insert_folder(
            session, workspace.id, data.name, data.parent_folder_id, data.sort_order
        )

    try:
        folder = await run_in_transaction(db, "create_folder", _insert, context={"workspace_id": workspace.id})
    except DuplicateRecordError as e:
        raise DuplicateNameError(f'A folder named "{data.name}" already exists in this location', field="name") from e

    logger.info("Created folder %s (depth %d) in workspace %s", folder.id, depth, workspace.id)
    return folder


async def update_folder(db: AsyncSession, caller: Caller, folder_id: str, name: str) -> Folder:
    """Rename a folder; renaming to the current name is a no-op."""
    data = validate_input(FolderRename, {"folder_id": folder_id, "name": name})
    folder, workspace = await verify_folder_ownership(db, caller, data.folder_id)
    if data.name == folder.name:
        return folder

    sibling = await folder_repo.find_sibling_by_name(
        db, workspace.id, folder.parent_folder_id, data.name, exclude_folder_id=folder.id
    )
    if sibling is not None:
        raise DuplicateNameError(f'A folder named "{data.name}" already exists in this location', field="name")

    async def _rename(session: AsyncSession) -> Folder:
        return await folder_repo.update_folder_name(session, folder, data.name)

    try:
        folder = await run_in_transaction(db, "update_folder", _rename, context={"folder_id": folder.id})
    except DuplicateRecordError as e:
        raise DuplicateNameError(f'A folder named "{data.name}" already exists in this location', field="name") from e
    logger.info("Renamed folder %s", folder.id)
    return folder


async def move_folder(
    db: AsyncSession, caller: Caller, folder_id: str, new_parent_id: str | None
) -> FolderMoveResult:
    """Move a folder under ``new_parent_id`` (None = workspace root)."""
    data = validate_input(FolderMove, {"folder_id": folder_id, "new_parent_id": new_parent_id})
    folder, workspace = await verify_folder_ownership(db, caller, data.folder_id)

    target = None
    if data.new_parent_id is not None and data.new_parent_id != folder.id:
        target, _ = await verify_folder_ownership(db, caller, data.new_parent_id, workspace)
    elif data.new_parent_id == folder.id:
        raise CircularReferenceError()

    if not await check_relocation(db, folder, target):
        return FolderMoveResult(folder=folder, moved_count=0)

    async def _move(session: AsyncSession) -> None:
        await folder_repo.update_folder_parent(session, folder.id, data.new_parent_id)

    try:
        await run_in_transaction(
            db, "move_folder", _move, context={"folder_id": folder.id, "target": data.new_parent_id}
        )
    except DuplicateRecordError as e:
        raise DuplicateNameError(f'A folder named "{folder.name}" already exists in the destination') from e

    moved = await folder_repo.get_folder_by_id(db, folder.id)
    logger.info("Moved folder %s to %s", folder.id, data.new_parent_id or "root")
    return FolderMoveResult(folder=moved or folder, moved_count=1)


async def delete_storage_objects(store: ObjectStore, files: list[File]) -> list[BaseException | None]:
    """Delete every file's object concurrently; one result slot per file, None on success."""
    results = await asyncio.gather(
        *(store.delete_file(f.storage_path, settings.storage_bucket) for f in files),
        return_exceptions=True,
    )
    return [r if isinstance(r, BaseException) else None for r in results]


async def delete_folder(
    db: AsyncSession, caller: Caller, folder_id: str, object_store: ObjectStore
) -> FolderDeleteResult:
    """Delete a folder with all descendant folders and files.

    Storage objects go first. If any of them cannot be deleted the folder is
    left untouched and ``StorageFailureError`` is raised.
    """
    folder_id = validate_id(folder_id, "folder_id")
    folder, workspace = await verify_folder_ownership(db, caller, folder_id)

    subtree = await collect_subtree(db, folder)
    files = await file_repo.get_files_in_folders(db, [f.id for f in subtree])

    failures = [e for e in await delete_storage_objects(object_store, files) if e is not None]
    if failures:
        logger.error("Aborting delete of folder %s: %d of %d storage deletions failed", folder.id, len(failures), len(files))
        raise StorageFailureError(
            f"Could not delete {len(failures)} file(s) from storage; the folder was not deleted"
        )

    freed = sum(f.file_size for f in files)

    async def _delete(session: AsyncSession) -> None:
        await folder_repo.delete_folders(session, [folder.id])
        await user_repo.adjust_storage_used(session, workspace.user_id, -freed)

    await run_in_transaction(db, "delete_folder", _delete, context={"folder_id": folder.id})
    logger.info(
        "Deleted folder %s with %d subfolder(s) and %d file(s)", folder.id, len(subtree) - 1, len(files)
    )
    return FolderDeleteResult(folder_id=folder.id, deleted_folder_count=len(subtree), deleted_file_count=len(files))


async def get_folder_hierarchy(db: AsyncSession, caller: Caller, folder_id: str) -> list[Folder]:
    """Ancestor chain of a folder, root first, ending with the folder itself."""
    folder_id = validate_id(folder_id, "folder_id")
    folder, _ = await verify_folder_ownership(db, caller, folder_id)
    return await get_ancestor_chain(db, folder)


async def get_root_folders(db: AsyncSession, caller: Caller) -> list[Folder]:
    workspace = await require_workspace(db, caller)
    return await folder_repo.get_root_folders(db, workspace.id)


async def get_child_folders(db: AsyncSession, caller: Caller, parent_folder_id: str) -> list[Folder]:
    parent_folder_id = validate_id(parent_folder_id, "parent_folder_id")
    parent, workspace = await verify_folder_ownership(db, caller, parent_folder_id)
    return await folder_repo.get_child_folders(db, workspace.id, parent.id)


async def resolve_target_folder(
    db: AsyncSession, caller: Caller, workspace: Workspace, target_folder_id: str | None
) -> Folder | None:
    """Owned destination folder, or None for the workspace root."""
    if target_folder_id is None:
        return None
    target, _ = await verify_folder_ownership(db, caller, target_folder_id, workspace)
    return target
