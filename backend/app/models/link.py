"""Link Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from app.core.errors import ValidationError
from app.core.validation import ResourceId, normalize_slug, unique_ids


class LinkCreate(BaseModel):
    """Standalone link with optional per-link access settings."""

    slug: str
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    root_folder_id: ResourceId | None = None
    is_public: bool = True
    require_email: bool = False
    require_password: bool = False
    password: str | None = Field(None, min_length=8, max_length=128)
    notify_on_upload: bool = True
    custom_message: str | None = Field(None, max_length=1000)
    max_files: int = Field(100, ge=1, le=10000)
    max_file_size: int = Field(100 * 1024 * 1024, ge=1)
    expires_at: datetime | None = None
    allowed_emails: list[EmailStr] = Field(default_factory=list)

    @field_validator("slug")
    @classmethod
    def _normalize_slug(cls, v: str) -> str:
        try:
            return normalize_slug(v)
        except ValidationError as e:
            raise ValueError(e.message) from None

    @field_validator("allowed_emails")
    @classmethod
    def _lower_emails(cls, v: list[str]) -> list[str]:
        return unique_ids(email.lower() for email in v)

    @model_validator(mode="after")
    def _check_password(self) -> "LinkCreate":
        if self.require_password and not self.password:
            raise ValueError("A password is required when password protection is enabled")
        return self


class LinkUpdate(BaseModel):
    """Partial update of a link; only fields that are sent change.

    Sending ``password`` replaces the stored hash, and turning
    ``require_password`` off clears it.
    """

    link_id: ResourceId
    slug: str | None = None
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    root_folder_id: ResourceId | None = None
    is_public: bool | None = None
    is_active: bool | None = None
    require_email: bool | None = None
    require_password: bool | None = None
    password: str | None = Field(None, min_length=8, max_length=128)
    notify_on_upload: bool | None = None
    custom_message: str | None = Field(None, max_length=1000)
    max_files: int | None = Field(None, ge=1, le=10000)
    max_file_size: int | None = Field(None, ge=1)
    expires_at: datetime | None = None

    @field_validator("slug")
    @classmethod
    def _normalize_slug(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            return normalize_slug(v)
        except ValidationError as e:
            raise ValueError(e.message) from None


class LinkResponse(BaseModel):
    """Link returned to the client."""

    id: str
    workspace_id: str
    slug: str
    title: str
    description: str | None = None
    link_type: str
    root_folder_id: str | None = None
    is_public: bool
    is_active: bool
    require_email: bool
    require_password: bool
    notify_on_upload: bool
    custom_message: str | None = None
    max_files: int
    max_file_size: int
    expires_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SlugAvailability(BaseModel):
    slug: str
    available: bool


class LinkCreateBody(BaseModel):
    slug: str
    title: str
    description: str | None = None
    root_folder_id: str | None = None
    is_public: bool = True
    require_email: bool = False
    require_password: bool = False
    password: str | None = None
    notify_on_upload: bool = True
    custom_message: str | None = None
    max_files: int = 100
    max_file_size: int = 100 * 1024 * 1024
    expires_at: datetime | None = None
    allowed_emails: list[str] = []


class LinkUpdateBody(BaseModel):
    slug: str | None = None
    title: str | None = None
    description: str | None = None
    root_folder_id: str | None = None
    is_public: bool | None = None
    is_active: bool | None = None
    require_email: bool | None = None
    require_password: bool | None = None
    password: str | None = None
    notify_on_upload: bool | None = None
    custom_message: str | None = None
    max_files: int | None = None
    max_file_size: int | None = None
    expires_at: datetime | None = None
