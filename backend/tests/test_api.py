"""End-to-end tests of the HTTP layer: envelopes, status codes and auth."""

import io
import uuid
import zipfile
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from app.api.dependencies import get_db, get_identity_provider, get_object_store, get_rate_limiter
from app.config import settings
from app.main import app


def _token(user_id: str) -> dict[str, str]:
    token = jwt.encode({"sub": user_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(db, limiter, object_store, identity_provider):
    async def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_missing_token_is_unauthenticated(client):
    response = await client.post("/api/v1/folders", json={"name": "Docs"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Authentication required", "code": "UNAUTHENTICATED"}


@pytest.mark.asyncio
async def test_bad_token_is_unauthenticated(client):
    response = await client.get("/api/v1/folders", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


@pytest.mark.asyncio
async def test_onboarding_flow(client, identity_provider):
    headers = _token("user_api_1")

    status_before = await client.get("/api/v1/onboarding/status", headers=headers)
    assert status_before.json()["data"]["has_workspace"] is False

    created = await client.post("/api/v1/onboarding", json={"username": "api_user"}, headers=headers)
    body = created.json()
    assert created.status_code == 200
    assert body["success"] is True
    assert body["is_already_onboarded"] is False
    assert body["data"]["outcome"] == "created"
    assert body["data"]["link"]["slug"] == "api_user-first-link"

    again = await client.post("/api/v1/onboarding", json={"username": "api_user"}, headers=headers)
    assert again.status_code == 200
    assert again.json()["is_already_onboarded"] is True


@pytest.mark.asyncio
async def test_folder_crud(client, tenant):
    headers = _token(tenant.user.id)

    created = await client.post("/api/v1/folders", json={"name": "Docs"}, headers=headers)
    assert created.status_code == 201
    folder_id = created.json()["data"]["id"]

    duplicate = await client.post("/api/v1/folders", json={"name": "Docs"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "DUPLICATE_NAME"
    assert duplicate.json()["field"] == "name"

    child = await client.post("/api/v1/folders", json={"name": "Sub", "parent_folder_id": folder_id}, headers=headers)
    assert child.status_code == 201

    children = await client.get(f"/api/v1/folders/{folder_id}/children", headers=headers)
    assert [f["name"] for f in children.json()["data"]] == ["Sub"]

    renamed = await client.patch(f"/api/v1/folders/{folder_id}", json={"name": "Papers"}, headers=headers)
    assert renamed.json()["data"]["name"] == "Papers"

    deleted = await client.delete(f"/api/v1/folders/{folder_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["data"]["deleted_folder_count"] == 2


@pytest.mark.asyncio
async def test_move_into_descendant_is_rejected(client, tenant, make_chain):
    a, b = await make_chain(tenant.workspace, 2)
    response = await client.post(
        f"/api/v1/folders/{a.id}/move", json={"new_parent_id": b.id}, headers=_token(tenant.user.id)
    )
    assert response.status_code == 422
    assert response.json()["code"] == "CIRCULAR_REFERENCE"


@pytest.mark.asyncio
async def test_malformed_id_in_path(client, tenant):
    response = await client.get("/api/v1/folders/not-a-uuid/children", headers=_token(tenant.user.id))
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_ID"


@pytest.mark.asyncio
async def test_foreign_folder_is_forbidden(client, tenant, other_tenant, make_folder):
    theirs = await make_folder(other_tenant.workspace, "Theirs")
    response = await client.get(f"/api/v1/folders/{theirs.id}/hierarchy", headers=_token(tenant.user.id))
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_missing_folder_is_not_found(client, tenant):
    response = await client.get(f"/api/v1/folders/{uuid.uuid4()}/hierarchy", headers=_token(tenant.user.id))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_request_body_validation_uses_envelope(client, tenant):
    response = await client.post("/api/v1/folders", json={}, headers=_token(tenant.user.id))
    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert body["field"] == "name"


@pytest.mark.asyncio
async def test_bulk_delete_reports_partial_failure(client, tenant, make_file, object_store):
    ok = await make_file(tenant.workspace, "ok.txt")
    stuck = await make_file(tenant.workspace, "stuck.txt")
    stuck_id = stuck.id
    object_store.failing_paths.add(stuck.storage_path)

    response = await client.post(
        "/api/v1/files/bulk/delete", json={"file_ids": [ok.id, stuck.id]}, headers=_token(tenant.user.id)
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["deleted_file_count"] == 1
    assert data["failed_file_ids"] == [stuck_id]


@pytest.mark.asyncio
async def test_delete_file_storage_failure_is_502(client, tenant, make_file, object_store):
    stuck = await make_file(tenant.workspace, "stuck.txt")
    object_store.failing_paths.add(stuck.storage_path)

    response = await client.delete(f"/api/v1/files/{stuck.id}", headers=_token(tenant.user.id))

    assert response.status_code == 502
    assert response.json()["code"] == "STORAGE_FAILURE"


@pytest.mark.asyncio
async def test_bulk_download_returns_zip(client, tenant, make_folder, make_file, object_store):
    folder = await make_folder(tenant.workspace, "Docs")
    await make_file(tenant.workspace, "a.txt", folder)
    loose = await make_file(tenant.workspace, "b.txt")

    with patch("app.core.bulk_operations.fetch_bytes", new=object_store.fetch):
        response = await client.post(
            "/api/v1/files/bulk/download",
            json={"file_ids": [loose.id], "folder_ids": [folder.id]},
            headers=_token(tenant.user.id),
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["x-archive-entries"] == "2"
    assert "attachment" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert set(archive.namelist()) == {"b.txt", "Docs/a.txt"}


@pytest.mark.asyncio
async def test_link_and_permission_endpoints(client, tenant):
    headers = _token(tenant.user.id)
    owner_email = tenant.user.email

    availability = await client.get("/api/v1/links/slug-availability", params={"slug": "Client-Drop"}, headers=headers)
    assert availability.json()["data"] == {"slug": "client-drop", "available": True}

    created = await client.post("/api/v1/links", json={"slug": "client-drop", "title": "Client drop"}, headers=headers)
    assert created.status_code == 201
    link_id = created.json()["data"]["id"]

    granted = await client.post(
        f"/api/v1/links/{link_id}/permissions", json={"email": "guest@example.com"}, headers=headers
    )
    assert granted.status_code == 201
    assert granted.json()["data"]["role"] == "uploader"

    owner_removal = await client.delete(f"/api/v1/links/{link_id}/permissions/{owner_email}", headers=headers)
    assert owner_removal.status_code == 403
    assert owner_removal.json()["code"] == "OWNER_PROTECTED"

    listed = await client.get(f"/api/v1/links/{link_id}/permissions", headers=headers)
    assert {p["email"] for p in listed.json()["data"]} == {owner_email, "guest@example.com"}


@pytest.mark.asyncio
async def test_rate_limited_response_carries_flags(client, tenant, make_link):
    link = await make_link(tenant, "alice-drop")
    headers = _token(tenant.user.id)
    for i in range(10):
        ok = await client.post(
            f"/api/v1/links/{link.id}/permissions", json={"email": f"g{i}@example.com"}, headers=headers
        )
        assert ok.status_code == 201

    limited = await client.post(
        f"/api/v1/links/{link.id}/permissions", json={"email": "late@example.com"}, headers=headers
    )

    assert limited.status_code == 429
    body = limited.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["blocked"] is True
    assert "reset_at" in body


@pytest.mark.asyncio
async def test_file_list_and_rename(client, tenant, make_folder, make_file):
    headers = _token(tenant.user.id)
    folder = await make_folder(tenant.workspace, "Docs")
    file = await make_file(tenant.workspace, "a.txt", folder)
    await make_file(tenant.workspace, "b.txt", folder)

    listed = await client.get("/api/v1/files", params={"folder_id": folder.id}, headers=headers)
    assert [f["file_name"] for f in listed.json()["data"]] == ["a.txt", "b.txt"]

    clash = await client.patch(f"/api/v1/files/{file.id}", json={"file_name": "b.txt"}, headers=headers)
    assert clash.status_code == 409
    assert clash.json()["code"] == "DUPLICATE_NAME"

    renamed = await client.patch(f"/api/v1/files/{file.id}", json={"file_name": "c.txt"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["data"]["file_name"] == "c.txt"


@pytest.mark.asyncio
async def test_link_get_and_update(client, tenant, other_tenant, make_link):
    headers = _token(tenant.user.id)
    link = await make_link(tenant, "alice-drop")
    await make_link(other_tenant, "mallory-drop")

    fetched = await client.get(f"/api/v1/links/{link.id}", headers=headers)
    assert fetched.json()["data"]["slug"] == "alice-drop"

    taken = await client.patch(f"/api/v1/links/{link.id}", json={"slug": "mallory-drop"}, headers=headers)
    assert taken.status_code == 409
    assert taken.json()["code"] == "SLUG_CONFLICT"

    updated = await client.patch(
        f"/api/v1/links/{link.id}", json={"title": "Receipts", "slug": "Alice-Receipts"}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["title"] == "Receipts"
    assert updated.json()["data"]["slug"] == "alice-receipts"
