"""Tests for standalone link management."""

import pytest

from app.core import links
from app.core.errors import ForbiddenError, SlugConflictError, UnauthenticatedError, ValidationError
from app.db.repositories import link_repo, permission_repo
from app.services.identity import ANONYMOUS


@pytest.mark.asyncio
async def test_create_link_with_owner_permission(db, tenant):
    link = await links.create_link(db, tenant.caller, slug="Client-Uploads", title="Client uploads")

    assert link.slug == "client-uploads"
    assert link.link_type == "custom"
    owner = await permission_repo.get_permission(db, link.id, tenant.user.email)
    assert owner.role == "owner"


@pytest.mark.asyncio
async def test_create_link_with_allowed_emails(db, tenant):
    link = await links.create_link(
        db,
        tenant.caller,
        slug="team-drop",
        title="Team drop",
        allowed_emails=["Bob@Example.com", "carol@example.com", "bob@example.com"],
    )

    result = await permission_repo.get_permissions_by_link(db, link.id)
    assert {(p.email, p.role) for p in result} == {
        (tenant.user.email, "owner"),
        ("bob@example.com", "editor"),
        ("carol@example.com", "editor"),
    }


@pytest.mark.asyncio
async def test_create_link_hashes_password(db, tenant):
    link = await links.create_link(
        db, tenant.caller, slug="secret-drop", title="Secret", require_password=True, password="hunter22!"
    )
    assert link.password_hash is not None
    assert link.password_hash != "hunter22!"
    assert links.pwd_context.verify("hunter22!", link.password_hash)


@pytest.mark.asyncio
async def test_create_link_requires_password_when_protected(db, tenant):
    with pytest.raises(ValidationError):
        await links.create_link(db, tenant.caller, slug="secret-drop", title="Secret", require_password=True)


@pytest.mark.asyncio
async def test_create_link_with_taken_slug(db, tenant, other_tenant, make_link):
    await make_link(other_tenant, "popular")
    with pytest.raises(SlugConflictError):
        await links.create_link(db, tenant.caller, slug="popular", title="Mine")


@pytest.mark.asyncio
@pytest.mark.parametrize("slug", ["ab", "has space", "-leading", "UPPER!"])
async def test_create_link_rejects_bad_slugs(db, tenant, slug):
    with pytest.raises(ValidationError):
        await links.create_link(db, tenant.caller, slug=slug, title="Bad")


@pytest.mark.asyncio
async def test_create_link_rooted_in_foreign_folder(db, tenant, other_tenant, make_folder):
    theirs = await make_folder(other_tenant.workspace, "Theirs")
    with pytest.raises(ForbiddenError):
        await links.create_link(db, tenant.caller, slug="mine", title="Mine", root_folder_id=theirs.id)


@pytest.mark.asyncio
async def test_check_slug_availability(db, tenant, make_link, limiter):
    await make_link(tenant, "taken-slug")

    assert await links.check_slug_availability(db, tenant.caller, limiter, "Taken-Slug") == ("taken-slug", False)
    assert await links.check_slug_availability(db, tenant.caller, limiter, "free-slug") == ("free-slug", True)


@pytest.mark.asyncio
async def test_check_slug_availability_requires_caller(db, limiter):
    with pytest.raises(UnauthenticatedError):
        await links.check_slug_availability(db, ANONYMOUS, limiter, "free-slug")


@pytest.mark.asyncio
async def test_check_slug_availability_checks_caller_before_slug(db, limiter):
    with pytest.raises(UnauthenticatedError):
        await links.check_slug_availability(db, ANONYMOUS, limiter, "!!")

@pytest.mark.asyncio
async def test_list_links_is_tenant_scoped(db, tenant, other_tenant, make_link):
    await make_link(tenant, "alice-one")
    await make_link(other_tenant, "mallory-one")

    result = await links.list_links(db, tenant.caller)
    assert [link.slug for link in result] == ["alice-one"]


@pytest.mark.asyncio
async def test_delete_link_removes_permissions(db, tenant, make_link):
    link = await make_link(tenant, "short-lived")

    await links.delete_link(db, tenant.caller, link.id)

    assert await link_repo.get_link_by_id(db, link.id) is None
    assert await permission_repo.get_permissions_by_link(db, link.id) == []


@pytest.mark.asyncio
async def test_delete_foreign_link_is_forbidden(db, tenant, other_tenant, make_link):
    link = await make_link(other_tenant, "not-yours")
    with pytest.raises(ForbiddenError):
        await links.delete_link(db, tenant.caller, link.id)


# ---------------------------------------------------------------------------
# get_link / update_link
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_link(db, tenant, other_tenant, make_link):
    mine = await make_link(tenant, "alice-drop")
    theirs = await make_link(other_tenant, "mallory-drop")

    assert (await links.get_link(db, tenant.caller, mine.id)).slug == "alice-drop"
    with pytest.raises(ForbiddenError):
        await links.get_link(db, tenant.caller, theirs.id)


@pytest.mark.asyncio
async def test_update_link_settings(db, tenant, make_link):
    link = await make_link(tenant, "alice-drop")

    updated = await links.update_link(
        db, tenant.caller, link.id, title="Tax documents", custom_message="Thanks!", max_files=5, is_active=False
    )

    assert updated.title == "Tax documents"
    assert updated.custom_message == "Thanks!"
    assert updated.max_files == 5
    assert updated.is_active is False
    assert updated.slug == "alice-drop"


@pytest.mark.asyncio
async def test_update_link_slug(db, tenant, make_link):
    link = await make_link(tenant, "alice-drop")
    updated = await links.update_link(db, tenant.caller, link.id, slug="Alice-Taxes")
    assert updated.slug == "alice-taxes"
    assert await link_repo.get_link_by_slug(db, "alice-drop") is None


@pytest.mark.asyncio
async def test_update_link_keeping_own_slug(db, tenant, make_link):
    link = await make_link(tenant, "alice-drop")
    updated = await links.update_link(db, tenant.caller, link.id, slug="alice-drop", title="Renamed")
    assert updated.title == "Renamed"


@pytest.mark.asyncio
async def test_update_link_to_taken_slug(db, tenant, other_tenant, make_link):
    link = await make_link(tenant, "alice-drop")
    await make_link(other_tenant, "mallory-drop")

    with pytest.raises(SlugConflictError) as exc_info:
        await links.update_link(db, tenant.caller, link.id, slug="mallory-drop")
    assert exc_info.value.field == "slug"
    assert (await link_repo.get_link_by_id(db, link.id)).slug == "alice-drop"


@pytest.mark.asyncio
async def test_update_link_password_protection(db, tenant, make_link):
    link = await make_link(tenant, "alice-drop")

    with pytest.raises(ValidationError) as exc_info:
        await links.update_link(db, tenant.caller, link.id, require_password=True)
    assert exc_info.value.field == "password"

    protected = await links.update_link(
        db, tenant.caller, link.id, require_password=True, password="correct horse"
    )
    assert links.pwd_context.verify("correct horse", protected.password_hash)

    opened = await links.update_link(db, tenant.caller, link.id, require_password=False)
    assert opened.password_hash is None


@pytest.mark.asyncio
async def test_update_foreign_link_is_forbidden(db, tenant, other_tenant, make_link):
    link = await make_link(other_tenant, "not-yours")
    with pytest.raises(ForbiddenError):
        await links.update_link(db, tenant.caller, link.id, title="Mine now")
