"""Folder Pydantic schemas."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel

from app.core.validation import ResourceId

_FORBIDDEN_NAME_CHARS = set('/\\<>:"|?*')


def clean_folder_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValueError("Folder name is required")
    if len(name) > 255:
        raise ValueError("Folder name must be at most 255 characters")
    if name in (".", ".."):
        raise ValueError("Folder name cannot be '.' or '..'")
    if any(ch in _FORBIDDEN_NAME_CHARS or ord(ch) < 32 for ch in name):
        raise ValueError("Folder name contains invalid characters")
    return name


FolderName = Annotated[str, AfterValidator(clean_folder_name)]


class FolderCreate(BaseModel):
    """Create a folder at the root or under ``parent_folder_id``."""

    name: FolderName
    parent_folder_id: ResourceId | None = None
    sort_order: int = 0


class FolderRename(BaseModel):
    folder_id: ResourceId
    name: FolderName


class FolderMove(BaseModel):
    """Move a folder; ``new_parent_id`` None means the workspace root."""

    folder_id: ResourceId
    new_parent_id: ResourceId | None = None


class FolderResponse(BaseModel):
    """Folder returned to the client."""

    id: str
    workspace_id: str
    parent_folder_id: str | None = None
    name: str
    sort_order: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


# Request bodies; IDs stay raw strings here and are validated by the core.

class FolderCreateBody(BaseModel):
    name: str
    parent_folder_id: str | None = None
    sort_order: int = 0


class FolderRenameBody(BaseModel):
    name: str


class FolderMoveBody(BaseModel):
    new_parent_id: str | None = None
