"""Link permission Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, field_validator

from app.core.validation import ResourceId

ROLE_OWNER = "owner"
ROLE_EDITOR = "editor"
ROLE_UPLOADER = "uploader"

# Roles that can be granted or assigned; the owner role only comes with the link.
GrantableRole = Literal["editor", "uploader"]
PermissionRole = Literal["owner", "editor", "uploader"]


class _PermissionTarget(BaseModel):
    link_id: ResourceId
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class PermissionGrant(_PermissionTarget):
    role: GrantableRole = "uploader"


class PermissionRevoke(_PermissionTarget):
    pass


class PermissionRoleChange(_PermissionTarget):
    role: PermissionRole


class PermissionResponse(BaseModel):
    """Permission returned to the client."""

    id: str
    link_id: str
    email: str
    role: str
    is_verified: bool = False
    created_at: datetime | None = None

    class Config:
        from_attributes = True


# Request bodies

class PermissionGrantBody(BaseModel):
    email: str
    role: str = "uploader"


class PermissionRoleBody(BaseModel):
    role: str
