"""File and bulk-selection Pydantic schemas."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field, model_validator

from app.core.validation import ResourceId, unique_ids

MAX_BULK_ITEMS = 500


def clean_file_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValueError("File name is required")
    if len(name) > 255:
        raise ValueError("File name must be at most 255 characters")
    if "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError("File name contains invalid characters")
    return name


FileName = Annotated[str, AfterValidator(clean_file_name)]


class FileCreate(BaseModel):
    """Metadata for an object that has already been uploaded to storage."""

    file_name: FileName
    file_size: int = Field(..., ge=0)
    mime_type: str = Field("application/octet-stream", max_length=255)
    storage_path: str = Field(..., min_length=1)
    folder_id: ResourceId | None = None
    link_id: ResourceId | None = None
    uploader_email: EmailStr | None = None
    uploader_name: str | None = Field(None, max_length=255)


class FileRename(BaseModel):
    file_id: ResourceId
    file_name: FileName


class FileResponse(BaseModel):
    """File returned to the client."""

    id: str
    workspace_id: str
    folder_id: str | None = None
    link_id: str | None = None
    file_name: str
    file_size: int
    mime_type: str
    uploader_email: str | None = None
    uploader_name: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class BulkSelection(BaseModel):
    """Disjoint sets of file and folder IDs; repeats are collapsed."""

    file_ids: list[ResourceId] = Field(default_factory=list)
    folder_ids: list[ResourceId] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_selection(self) -> "BulkSelection":
        self.file_ids = unique_ids(self.file_ids)
        self.folder_ids = unique_ids(self.folder_ids)
        total = len(self.file_ids) + len(self.folder_ids)
        if total == 0:
            raise ValueError("Select at least one file or folder")
        if total > MAX_BULK_ITEMS:
            raise ValueError(f"At most {MAX_BULK_ITEMS} items can be processed at once")
        return self


class BulkMove(BulkSelection):
    """``target_folder_id`` None moves the selection to the workspace root."""

    target_folder_id: ResourceId | None = None


# Request bodies

class FileCreateBody(BaseModel):
    file_name: str
    file_size: int
    mime_type: str = "application/octet-stream"
    storage_path: str
    folder_id: str | None = None
    link_id: str | None = None
    uploader_email: str | None = None
    uploader_name: str | None = None


class FileRenameBody(BaseModel):
    file_name: str


class BulkSelectionBody(BaseModel):
    file_ids: list[str] = []
    folder_ids: list[str] = []


class BulkMoveBody(BulkSelectionBody):
    target_folder_id: str | None = None
