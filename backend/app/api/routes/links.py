"""Link and link-permission endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import CurrentCaller, DbSession, Limiter, rate_limited
from app.core import links, permissions
from app.core.rate_limit import RateLimitPresets
from app.models.envelope import success_response
from app.models.link import LinkCreateBody, LinkResponse, LinkUpdateBody, SlugAvailability
from app.models.permission import PermissionGrantBody, PermissionResponse, PermissionRoleBody

logger = logging.getLogger(__name__)

router = APIRouter()


def _permission(permission) -> dict:
    return PermissionResponse.model_validate(permission).model_dump()


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

@router.get("")
async def list_links(caller: CurrentCaller, db: DbSession) -> dict:
    result = await links.list_links(db, caller)
    return success_response([LinkResponse.model_validate(link).model_dump() for link in result])


@router.get("/slug-availability")
async def check_slug(caller: CurrentCaller, db: DbSession, limiter: Limiter, slug: str = Query(...)) -> dict:
    normalized, available = await links.check_slug_availability(db, caller, limiter, slug)
    return success_response(SlugAvailability(slug=normalized, available=available).model_dump())


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("create-link", RateLimitPresets.MODERATE))],
)
async def create_link(body: LinkCreateBody, caller: CurrentCaller, db: DbSession) -> dict:
    """Create a standalone link with its owner permission."""
    link = await links.create_link(db, caller, **body.model_dump())
    return success_response(LinkResponse.model_validate(link).model_dump())


@router.delete(
    "/{link_id}",
    dependencies=[Depends(rate_limited("delete-link", RateLimitPresets.MODERATE))],
)
async def delete_link(link_id: str, caller: CurrentCaller, db: DbSession) -> dict:
    deleted_id = await links.delete_link(db, caller, link_id)
    return success_response({"link_id": deleted_id})


@router.get("/{link_id}")
async def get_link(link_id: str, caller: CurrentCaller, db: DbSession) -> dict:
    link = await links.get_link(db, caller, link_id)
    return success_response(LinkResponse.model_validate(link).model_dump())


@router.patch(
    "/{link_id}",
    dependencies=[Depends(rate_limited("update-link", RateLimitPresets.MODERATE))],
)
async def update_link(link_id: str, body: LinkUpdateBody, caller: CurrentCaller, db: DbSession) -> dict:
    """Change link settings; only the fields present in the body are touched."""
    link = await links.update_link(db, caller, link_id, **body.model_dump(exclude_unset=True))
    return success_response(LinkResponse.model_validate(link).model_dump())


# ---------------------------------------------------------------------------
# Permissions (rate limits are charged inside the registry)
# ---------------------------------------------------------------------------

@router.get("/{link_id}/permissions")
async def list_permissions(link_id: str, caller: CurrentCaller, db: DbSession, limiter: Limiter) -> dict:
    result = await permissions.get_link_permissions(db, caller, limiter, link_id)
    return success_response([_permission(p) for p in result])


@router.post("/{link_id}/permissions", status_code=status.HTTP_201_CREATED)
async def add_permission(
    link_id: str, body: PermissionGrantBody, caller: CurrentCaller, db: DbSession, limiter: Limiter
) -> dict:
    permission = await permissions.add_permission(db, caller, limiter, link_id, body.email, body.role)
    return success_response(_permission(permission))


@router.patch("/{link_id}/permissions/{email}")
async def update_permission(
    link_id: str, email: str, body: PermissionRoleBody, caller: CurrentCaller, db: DbSession, limiter: Limiter
) -> dict:
    permission = await permissions.update_permission(db, caller, limiter, link_id, email, body.role)
    return success_response(_permission(permission))


@router.delete("/{link_id}/permissions/{email}")
async def remove_permission(link_id: str, email: str, caller: CurrentCaller, db: DbSession, limiter: Limiter) -> dict:
    await permissions.remove_permission(db, caller, limiter, link_id, email)
    return success_response({"link_id": link_id, "email": email.lower()})
