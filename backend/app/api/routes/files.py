"""File endpoints: single-file create/delete and mixed bulk operations."""

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response

from app.api.dependencies import CurrentCaller, DbSession, Storage, rate_limited
from app.core import bulk_operations, file_operations
from app.core.rate_limit import RateLimitPresets
from app.models.envelope import success_response
from app.models.file import BulkMoveBody, BulkSelectionBody, FileCreateBody, FileRenameBody, FileResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_files(
    caller: CurrentCaller,
    db: DbSession,
    folder_id: str | None = Query(None),
    all_folders: bool = Query(False),
) -> dict:
    """Files at the root, in one folder, or everywhere with ``all_folders``."""
    result = await file_operations.list_files(db, caller, folder_id, all_folders)
    return success_response([FileResponse.model_validate(f).model_dump() for f in result])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("file-upload", RateLimitPresets.FILE_UPLOAD))],
)
async def create_file(body: FileCreateBody, caller: CurrentCaller, db: DbSession) -> dict:
    """Register an uploaded object as a file."""
    file = await file_operations.create_file_record(db, caller, **body.model_dump())
    return success_response(FileResponse.model_validate(file).model_dump())


@router.delete(
    "/{file_id}",
    dependencies=[Depends(rate_limited("delete-file", RateLimitPresets.MODERATE))],
)
async def delete_file(file_id: str, caller: CurrentCaller, db: DbSession, storage: Storage) -> dict:
    deleted_id = await file_operations.delete_file(db, caller, file_id, storage)
    return success_response({"file_id": deleted_id})


@router.patch(
    "/{file_id}",
    dependencies=[Depends(rate_limited("update-file", RateLimitPresets.MODERATE))],
)
async def update_file(file_id: str, body: FileRenameBody, caller: CurrentCaller, db: DbSession) -> dict:
    file = await file_operations.update_file(db, caller, file_id, body.file_name)
    return success_response(FileResponse.model_validate(file).model_dump())


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

@router.post(
    "/bulk/move",
    dependencies=[Depends(rate_limited("bulk-move", RateLimitPresets.MODERATE))],
)
async def bulk_move(body: BulkMoveBody, caller: CurrentCaller, db: DbSession) -> dict:
    result = await bulk_operations.move_mixed(
        db, caller, body.file_ids, body.folder_ids, body.target_folder_id
    )
    return success_response({
        "requested_file_count": result.requested_file_count,
        "requested_folder_count": result.requested_folder_count,
        "moved_file_count": result.moved_file_count,
        "moved_folder_count": result.moved_folder_count,
    })


@router.post(
    "/bulk/delete",
    dependencies=[Depends(rate_limited("bulk-delete", RateLimitPresets.MODERATE))],
)
async def bulk_delete(body: BulkSelectionBody, caller: CurrentCaller, db: DbSession, storage: Storage) -> dict:
    """Delete a mixed selection; partial storage failures are reported, not raised."""
    result = await bulk_operations.delete_mixed(db, caller, body.file_ids, body.folder_ids, storage)
    return success_response({
        "requested_file_count": result.requested_file_count,
        "requested_folder_count": result.requested_folder_count,
        "deleted_file_count": result.deleted_file_count,
        "deleted_folder_count": result.deleted_folder_count,
        "deleted_nested_file_count": result.deleted_nested_file_count,
        "failed_file_ids": result.failed_file_ids,
        "failed_folder_ids": result.failed_folder_ids,
    })


@router.post(
    "/bulk/download",
    dependencies=[Depends(rate_limited("bulk-download", RateLimitPresets.MODERATE))],
)
async def bulk_download(body: BulkSelectionBody, caller: CurrentCaller, db: DbSession, storage: Storage) -> Response:
    """Return a ZIP of the selection; the entry count travels in ``X-Archive-Entries``."""
    result = await bulk_operations.bulk_download(db, caller, body.file_ids, body.folder_ids, storage)
    return Response(
        content=result.archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{result.file_name}"',
            "X-Archive-Entries": str(len(result.entries)),
        },
    )
