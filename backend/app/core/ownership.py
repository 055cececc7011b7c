"""Workspace ownership checks.

Every mutating or listing operation resolves the caller's workspace and
checks that each resource it touches lives in it. A resource that does not
exist raises ``NotFoundError``; one that exists in another tenant's
workspace raises ``ForbiddenError`` with the same wording for every
resource, so a caller cannot tell which foreign IDs are real.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ForbiddenError, NotFoundError, UnauthenticatedError
from app.db.models import File, Folder, Link, Workspace
from app.db.repositories import file_repo, folder_repo, link_repo, workspace_repo
from app.services.identity import Caller

logger = logging.getLogger(__name__)


def require_caller(caller: Caller) -> str:
    """Return the caller's user ID or raise ``UnauthenticatedError``."""
    if not caller.is_authenticated:
        raise UnauthenticatedError()
    return caller.user_id  # type: ignore[return-value]


async def require_workspace(db: AsyncSession, caller: Caller) -> Workspace:
    """Resolve the workspace owned by the caller."""
    user_id = require_caller(caller)
    workspace = await workspace_repo.get_workspace_by_user(db, user_id)
    if workspace is None:
        raise NotFoundError("Workspace not found. Complete onboarding first.")
    return workspace


def _deny(kind: str, resource_id: str, workspace: Workspace) -> ForbiddenError:
    logger.warning("Cross-tenant access to %s %s from workspace %s", kind, resource_id, workspace.id)
    return ForbiddenError(f"You do not have permission to access this {kind}")


async def verify_folder_ownership(
    db: AsyncSession, caller: Caller, folder_id: str, workspace: Workspace | None = None
) -> tuple[Folder, Workspace]:
    workspace = workspace or await require_workspace(db, caller)
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise NotFoundError("Folder not found", field="folder_id")
    if folder.workspace_id != workspace.id:
        raise _deny("folder", folder_id, workspace)
    return folder, workspace


async def verify_file_ownership(
    db: AsyncSession, caller: Caller, file_id: str, workspace: Workspace | None = None
) -> tuple[File, Workspace]:
    workspace = workspace or await require_workspace(db, caller)
    file = await file_repo.get_file_by_id(db, file_id)
    if file is None:
        raise NotFoundError("File not found", field="file_id")
    if file.workspace_id != workspace.id:
        raise _deny("file", file_id, workspace)
    return file, workspace


async def verify_link_ownership(
    db: AsyncSession, caller: Caller, link_id: str, workspace: Workspace | None = None
) -> tuple[Link, Workspace]:
    workspace = workspace or await require_workspace(db, caller)
    link = await link_repo.get_link_by_id(db, link_id)
    if link is None:
        raise NotFoundError("Link not found", field="link_id")
    if link.workspace_id != workspace.id:
        raise _deny("link", link_id, workspace)
    return link, workspace


async def verify_folders_owned(db: AsyncSession, workspace: Workspace, folder_ids: list[str]) -> list[Folder]:
    """Resolve every folder ID in order; one missing or foreign ID fails the whole call."""
    by_id = {f.id: f for f in await folder_repo.get_folders_by_ids(db, folder_ids)}
    folders = []
    for folder_id in folder_ids:
        folder = by_id.get(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found", field="folder_ids")
        if folder.workspace_id != workspace.id:
            raise _deny("folder", folder_id, workspace)
        folders.append(folder)
    return folders


async def verify_files_owned(db: AsyncSession, workspace: Workspace, file_ids: list[str]) -> list[File]:
    """Resolve every file ID in order; one missing or foreign ID fails the whole call."""
    by_id = {f.id: f for f in await file_repo.get_files_by_ids(db, file_ids)}
    files = []
    for file_id in file_ids:
        file = by_id.get(file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found", field="file_ids")
        if file.workspace_id != workspace.id:
            raise _deny("file", file_id, workspace)
        files.append(file)
    return files
