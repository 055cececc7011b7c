"""Folder tree endpoints."""

import logging

from fastapi import APIRouter, Depends, status

from app.api.dependencies import CurrentCaller, DbSession, Storage, rate_limited
from app.core import folder_hierarchy
from app.core.rate_limit import RateLimitPresets
from app.models.envelope import success_response
from app.models.folder import FolderCreateBody, FolderMoveBody, FolderRenameBody, FolderResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_mutation_limit = Depends(rate_limited("folder-mutation", RateLimitPresets.MODERATE))


def _folder(folder) -> dict:
    return FolderResponse.model_validate(folder).model_dump()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@router.get("")
async def list_root_folders(caller: CurrentCaller, db: DbSession) -> dict:
    """Return the caller's root-level folders."""
    folders = await folder_hierarchy.get_root_folders(db, caller)
    return success_response([_folder(f) for f in folders])


@router.get("/{folder_id}/children")
async def list_child_folders(folder_id: str, caller: CurrentCaller, db: DbSession) -> dict:
    folders = await folder_hierarchy.get_child_folders(db, caller, folder_id)
    return success_response([_folder(f) for f in folders])


@router.get("/{folder_id}/hierarchy")
async def folder_hierarchy_chain(folder_id: str, caller: CurrentCaller, db: DbSession) -> dict:
    """Return the ancestor chain of a folder, root first."""
    chain = await folder_hierarchy.get_folder_hierarchy(db, caller, folder_id)
    return success_response([_folder(f) for f in chain])


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[_mutation_limit])
async def create_folder(body: FolderCreateBody, caller: CurrentCaller, db: DbSession) -> dict:
    folder = await folder_hierarchy.create_folder(
        db, caller, body.name, parent_folder_id=body.parent_folder_id, sort_order=body.sort_order
    )
    return success_response(_folder(folder))


@router.patch("/{folder_id}", dependencies=[_mutation_limit])
async def rename_folder(folder_id: str, body: FolderRenameBody, caller: CurrentCaller, db: DbSession) -> dict:
    folder = await folder_hierarchy.update_folder(db, caller, folder_id, body.name)
    return success_response(_folder(folder))


@router.post("/{folder_id}/move", dependencies=[_mutation_limit])
async def move_folder(folder_id: str, body: FolderMoveBody, caller: CurrentCaller, db: DbSession) -> dict:
    result = await folder_hierarchy.move_folder(db, caller, folder_id, body.new_parent_id)
    return success_response(_folder(result.folder), moved_count=result.moved_count)


@router.delete("/{folder_id}", dependencies=[_mutation_limit])
async def delete_folder(folder_id: str, caller: CurrentCaller, db: DbSession, storage: Storage) -> dict:
    """Delete a folder with everything under it."""
    result = await folder_hierarchy.delete_folder(db, caller, folder_id, storage)
    return success_response({
        "folder_id": result.folder_id,
        "deleted_folder_count": result.deleted_folder_count,
        "deleted_file_count": result.deleted_file_count,
    })
