"""Standalone link management."""

import logging

from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, SlugConflictError, ValidationError
from app.core.ownership import require_caller, require_workspace, verify_folder_ownership, verify_link_ownership
from app.core.rate_limit import RateLimiter, RateLimitPresets
from app.core.validation import normalize_slug, validate_id, validate_input
from app.db.database import run_in_transaction
from app.db.exceptions import DuplicateRecordError
from app.db.models import Link
from app.db.repositories import link_repo, permission_repo, user_repo
from app.models.link import LinkCreate, LinkUpdate
from app.models.permission import ROLE_EDITOR, ROLE_OWNER
from app.services.identity import Caller

logger = logging.getLogger(__name__)

ACTION_CHECK_SLUG = "check-slug"

# Columns a partial update may set back to NULL.
_NULLABLE_FIELDS = {"description", "root_folder_id", "custom_message", "expires_at"}

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


async def check_slug_availability(db: AsyncSession, caller: Caller, limiter: RateLimiter, slug: str) -> tuple[str, bool]:
    """Return the normalized slug and whether it is free."""
    user_id = require_caller(caller)
    normalized = normalize_slug(slug)
    await limiter.enforce(user_id, ACTION_CHECK_SLUG, RateLimitPresets.SLUG_VALIDATION)
    return normalized, await link_repo.get_link_by_slug(db, normalized) is None


async def list_links(db: AsyncSession, caller: Caller) -> list[Link]:
    workspace = await require_workspace(db, caller)
    return await link_repo.get_links_by_workspace(db, workspace.id)


async def get_link(db: AsyncSession, caller: Caller, link_id: str) -> Link:
    link_id = validate_id(link_id, "link_id")
    link, _ = await verify_link_ownership(db, caller, link_id)
    return link


async def create_link(db: AsyncSession, caller: Caller, **fields: object) -> Link:
    """Create a link together with its owner permission.

    Accepts the fields of ``LinkCreate``. The owner permission uses the
    caller's account email; ``allowed_emails`` become editor permissions in
    the same transaction.
    """
    data = validate_input(LinkCreate, fields)
    workspace = await require_workspace(db, caller)
    if data.root_folder_id is not None:
        await verify_folder_ownership(db, caller, data.root_folder_id, workspace)

    owner = await user_repo.get_user_by_id(db, workspace.user_id)
    if owner is None:
        raise NotFoundError("User not found")
    if await link_repo.get_link_by_slug(db, data.slug) is not None:
        raise SlugConflictError(f'The slug "{data.slug}" is already taken', field="slug")

    password_hash = pwd_context.hash(data.password) if data.require_password and data.password else None
    owner_email = owner.email.lower()

    async def _create(session: AsyncSession) -> Link:
        link = await link_repo.insert_link(
            session,
            Link(
                workspace_id=workspace.id,
                slug=data.slug,
                title=data.title,
                description=data.description,
                link_type="custom",
                root_folder_id=data.root_folder_id,
                is_public=data.is_public,
                require_email=data.require_email,
                require_password=data.require_password,
                password_hash=password_hash,
                notify_on_upload=data.notify_on_upload,
                custom_message=data.custom_message,
                max_files=data.max_files,
                max_file_size=data.max_file_size,
                expires_at=data.expires_at,
            ),
        )
        await permission_repo.insert_permission(session, link.id, owner_email, ROLE_OWNER)
        for email in data.allowed_emails:
            if email != owner_email:
                await permission_repo.insert_permission(session, link.id, email, ROLE_EDITOR)
        return link

    try:
        link = await run_in_transaction(db, "create_link", _create, context={"slug": data.slug})
    except DuplicateRecordError as e:
        raise SlugConflictError(f'The slug "{data.slug}" is already taken', field="slug") from e
    logger.info("Created link %s (%s) in workspace %s", link.id, link.slug, workspace.id)
    return link


async def update_link(db: AsyncSession, caller: Caller, link_id: str, **fields: object) -> Link:
    """Change a link's slug, title or access settings.

    Only the fields passed in are touched. A new slug is re-checked against
    every other link and maps to ``SlugConflictError``.
    """
    data = validate_input(LinkUpdate, {"link_id": link_id, **fields})
    link, workspace = await verify_link_ownership(db, caller, data.link_id)

    changes = data.model_dump(exclude_unset=True, exclude={"link_id", "password"})
    changes = {k: v for k, v in changes.items() if v is not None or k in _NULLABLE_FIELDS}
    if changes.get("root_folder_id") is not None:
        await verify_folder_ownership(db, caller, changes["root_folder_id"], workspace)

    new_slug = changes.get("slug")
    if new_slug == link.slug:
        changes.pop("slug")
    elif new_slug is not None:
        taken = await link_repo.get_link_by_slug(db, new_slug)
        if taken is not None and taken.id != link.id:
            raise SlugConflictError(f'The slug "{new_slug}" is already taken', field="slug")

    require_password = changes.get("require_password", link.require_password)
    if not require_password:
        if link.password_hash is not None:
            changes["password_hash"] = None
    elif data.password:
        changes["password_hash"] = pwd_context.hash(data.password)
    elif link.password_hash is None:
        raise ValidationError("A password is required when password protection is enabled", field="password")

    if not changes:
        return link

    async def _update(session: AsyncSession) -> Link:
        return await link_repo.update_link(session, link, changes)

    try:
        link = await run_in_transaction(db, "update_link", _update, context={"link_id": link.id})
    except DuplicateRecordError as e:
        raise SlugConflictError(f'The slug "{new_slug}" is already taken', field="slug") from e
    logger.info("Updated link %s (%s)", link.id, ", ".join(sorted(changes)))
    return link


async def delete_link(db: AsyncSession, caller: Caller, link_id: str) -> str:
    """Delete a link; its permissions are removed by cascade."""
    link_id = validate_id(link_id, "link_id")
    link, _ = await verify_link_ownership(db, caller, link_id)

    async def _delete(session: AsyncSession) -> None:
        await link_repo.delete_link(session, link.id)

    await run_in_transaction(db, "delete_link", _delete, context={"link_id": link.id})
    logger.info("Deleted link %s", link.id)
    return link.id
