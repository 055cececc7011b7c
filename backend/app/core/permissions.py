"""Per-link permission registry.

Roles are ``owner``, ``editor`` and ``uploader``. The owner permission is
created together with its link and can never be removed or re-roled here;
only ``editor`` and ``uploader`` can be granted or assigned. A role change
naming ``owner`` passes the schema: an owner target then fails with owner
protection and a promotion to owner fails validation.

Every operation validates input, charges the caller's rate-limit budget for
that action and checks link ownership before touching any permission row.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateEmailError, NotFoundError, OwnerProtectedError, ValidationError
from app.core.ownership import require_caller, verify_link_ownership
from app.core.rate_limit import RateLimiter, RateLimitPresets
from app.core.validation import validate_id, validate_input
from app.db.database import run_in_transaction
from app.db.exceptions import DuplicateRecordError
from app.db.models import Permission
from app.db.repositories import permission_repo
from app.models.permission import ROLE_OWNER, PermissionGrant, PermissionRevoke, PermissionRoleChange
from app.services.identity import Caller

logger = logging.getLogger(__name__)

ACTION_ADD = "add-permission"
ACTION_REMOVE = "remove-permission"
ACTION_UPDATE = "update-permission"
ACTION_LIST = "get-permissions"


async def _existing_permission(db: AsyncSession, link_id: str, email: str) -> Permission:
    permission = await permission_repo.get_permission(db, link_id, email)
    if permission is None:
        raise NotFoundError(f"No permission found for {email} on this link", field="email")
    if permission.role == ROLE_OWNER:
        raise OwnerProtectedError()
    return permission


async def add_permission(
    db: AsyncSession,
    caller: Caller,
    limiter: RateLimiter,
    link_id: str,
    email: str,
    role: str = "uploader",
) -> Permission:
    """Grant ``role`` on a link to ``email``."""
    data = validate_input(PermissionGrant, {"link_id": link_id, "email": email, "role": role})
    user_id = require_caller(caller)
    await limiter.enforce(user_id, ACTION_ADD, RateLimitPresets.PERMISSION_MANAGEMENT)
    link, _ = await verify_link_ownership(db, caller, data.link_id)

    if await permission_repo.get_permission(db, link.id, data.email) is not None:
        raise DuplicateEmailError(f"{data.email} already has access to this link", field="email")

    async def _insert(session: AsyncSession) -> Permission:
        return await permission_repo.insert_permission(session, link.id, data.email, data.role)

    try:
        permission = await run_in_transaction(db, "add_permission", _insert, context={"link_id": link.id})
    except DuplicateRecordError as e:
        raise DuplicateEmailError(f"{data.email} already has access to this link", field="email") from e
    logger.info("Granted %s on link %s", data.role, link.id)
    return permission


async def remove_permission(
    db: AsyncSession, caller: Caller, limiter: RateLimiter, link_id: str, email: str
) -> None:
    data = validate_input(PermissionRevoke, {"link_id": link_id, "email": email})
    user_id = require_caller(caller)
    await limiter.enforce(user_id, ACTION_REMOVE, RateLimitPresets.PERMISSION_MANAGEMENT)
    link, _ = await verify_link_ownership(db, caller, data.link_id)
    permission = await _existing_permission(db, link.id, data.email)

    async def _delete(session: AsyncSession) -> None:
        await permission_repo.delete_permission(session, permission.id)

    await run_in_transaction(db, "remove_permission", _delete, context={"link_id": link.id})
    logger.info("Revoked %s permission %s on link %s", permission.role, permission.id, link.id)


async def update_permission(
    db: AsyncSession,
    caller: Caller,
    limiter: RateLimiter,
    link_id: str,
    email: str,
    role: str,
) -> Permission:
    data = validate_input(PermissionRoleChange, {"link_id": link_id, "email": email, "role": role})
    user_id = require_caller(caller)
    await limiter.enforce(user_id, ACTION_UPDATE, RateLimitPresets.PERMISSION_MANAGEMENT)
    link, _ = await verify_link_ownership(db, caller, data.link_id)
    permission = await _existing_permission(db, link.id, data.email)
    if data.role == ROLE_OWNER:
        raise ValidationError("A link has exactly one owner; ownership cannot be assigned", field="role")
    if permission.role == data.role:
        return permission

    async def _update(session: AsyncSession) -> None:
        await permission_repo.update_permission_role(session, permission.id, data.role)

    await run_in_transaction(db, "update_permission", _update, context={"link_id": link.id})
    logger.info("Changed permission %s on link %s to %s", permission.id, link.id, data.role)
    updated = await permission_repo.get_permission(db, link.id, data.email)
    return updated or permission


async def get_link_permissions(
    db: AsyncSession, caller: Caller, limiter: RateLimiter, link_id: str
) -> list[Permission]:
    """All permissions of a link the caller owns."""
    link_id = validate_id(link_id, "link_id")
    user_id = require_caller(caller)
    await limiter.enforce(user_id, ACTION_LIST, RateLimitPresets.GENEROUS)
    link, _ = await verify_link_ownership(db, caller, link_id)
    return await permission_repo.get_permissions_by_link(db, link.id)
