"""Tests for bulk move, delete and download."""

import io
import uuid
import zipfile
from unittest.mock import patch

import pytest

from app.core import bulk_operations
from app.core.errors import (
    CircularReferenceError,
    DuplicateNameError,
    ForbiddenError,
    NotFoundError,
    StorageFailureError,
    ValidationError,
)
from app.db.exceptions import DatabaseError
from app.db.repositories import file_repo, folder_repo


# ---------------------------------------------------------------------------
# move_mixed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_move_mixed_moves_files_and_folders(db, tenant, make_folder, make_file):
    target = await make_folder(tenant.workspace, "Target")
    folder = await make_folder(tenant.workspace, "Docs")
    file = await make_file(tenant.workspace, "notes.txt")

    result = await bulk_operations.move_mixed(db, tenant.caller, [file.id], [folder.id], target.id)

    assert result.moved_file_count == 1
    assert result.moved_folder_count == 1
    assert (await file_repo.get_file_by_id(db, file.id)).folder_id == target.id
    assert (await folder_repo.get_folder_by_id(db, folder.id)).parent_folder_id == target.id


@pytest.mark.asyncio
async def test_move_mixed_counts_items_already_in_target(db, tenant, make_folder, make_file):
    target = await make_folder(tenant.workspace, "Target")
    already = await make_file(tenant.workspace, "here.txt", target)
    moving = await make_file(tenant.workspace, "there.txt")

    result = await bulk_operations.move_mixed(db, tenant.caller, [already.id, moving.id], [], target.id)

    assert result.requested_file_count == 2
    assert result.moved_file_count == 1


@pytest.mark.asyncio
async def test_move_mixed_to_root(db, tenant, make_folder, make_file):
    parent = await make_folder(tenant.workspace, "Parent")
    file = await make_file(tenant.workspace, "deep.txt", parent)

    result = await bulk_operations.move_mixed(db, tenant.caller, [file.id], [], None)

    assert result.moved_file_count == 1
    assert (await file_repo.get_file_by_id(db, file.id)).folder_id is None


@pytest.mark.asyncio
async def test_move_mixed_is_all_or_nothing_on_name_clash(db, tenant, make_folder, make_file):
    target = await make_folder(tenant.workspace, "Target")
    await make_file(tenant.workspace, "report.pdf", target)
    free = await make_file(tenant.workspace, "free.txt")
    clash = await make_file(tenant.workspace, "report.pdf")
    folder = await make_folder(tenant.workspace, "Sub")

    with pytest.raises(DuplicateNameError):
        await bulk_operations.move_mixed(db, tenant.caller, [free.id, clash.id], [folder.id], target.id)

    assert (await file_repo.get_file_by_id(db, free.id)).folder_id is None
    assert (await folder_repo.get_folder_by_id(db, folder.id)).parent_folder_id is None


@pytest.mark.asyncio
async def test_move_mixed_rolls_back_earlier_moves_when_a_later_write_fails(db, tenant, make_folder):
    target = await make_folder(tenant.workspace, "Target")
    first = await make_folder(tenant.workspace, "First")
    second = await make_folder(tenant.workspace, "Second")
    target_id, first_id, second_id = target.id, first.id, second.id
    real_update = folder_repo.update_folder_parent
    calls = {"n": 0}

    async def _fail_on_second_write(session, folder_id, parent_id):
        calls["n"] += 1
        if calls["n"] == 2:
            raise DatabaseError("Failed to update folder parent: lost connection")
        return await real_update(session, folder_id, parent_id)

    with patch("app.db.repositories.folder_repo.update_folder_parent", side_effect=_fail_on_second_write):
        with pytest.raises(DatabaseError):
            await bulk_operations.move_mixed(db, tenant.caller, [], [first_id, second_id], target_id)

    assert calls["n"] == 2
    assert (await folder_repo.get_folder_by_id(db, first_id)).parent_folder_id is None
    assert (await folder_repo.get_folder_by_id(db, second_id)).parent_folder_id is None

@pytest.mark.asyncio
async def test_move_mixed_rejects_two_selected_items_with_same_name(db, tenant, make_folder):
    target = await make_folder(tenant.workspace, "Target")
    a = await make_folder(tenant.workspace, "A")
    b = await make_folder(tenant.workspace, "B")
    twin_a = await make_folder(tenant.workspace, "Twin", a)
    twin_b = await make_folder(tenant.workspace, "Twin", b)

    with pytest.raises(DuplicateNameError):
        await bulk_operations.move_mixed(db, tenant.caller, [], [twin_a.id, twin_b.id], target.id)


@pytest.mark.asyncio
async def test_move_mixed_rejects_folder_into_own_subtree(db, tenant, make_chain):
    a, b = await make_chain(tenant.workspace, 2)
    with pytest.raises(CircularReferenceError):
        await bulk_operations.move_mixed(db, tenant.caller, [], [a.id], b.id)


@pytest.mark.asyncio
async def test_move_mixed_with_foreign_item_fails_whole_call(db, tenant, other_tenant, make_folder, make_file):
    target = await make_folder(tenant.workspace, "Target")
    mine = await make_file(tenant.workspace, "mine.txt")
    theirs = await make_file(other_tenant.workspace, "theirs.txt")

    with pytest.raises(ForbiddenError):
        await bulk_operations.move_mixed(db, tenant.caller, [mine.id, theirs.id], [], target.id)
    assert (await file_repo.get_file_by_id(db, mine.id)).folder_id is None


@pytest.mark.asyncio
async def test_move_mixed_with_missing_item(db, tenant, make_folder):
    target = await make_folder(tenant.workspace, "Target")
    with pytest.raises(NotFoundError):
        await bulk_operations.move_mixed(db, tenant.caller, [str(uuid.uuid4())], [], target.id)


@pytest.mark.asyncio
async def test_move_mixed_requires_selection(db, tenant):
    with pytest.raises(ValidationError, match="at least one"):
        await bulk_operations.move_mixed(db, tenant.caller, [], [], None)


# ---------------------------------------------------------------------------
# delete_mixed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_mixed_removes_everything(db, tenant, make_folder, make_file, object_store):
    tenant.user.storage_used = 500
    await db.commit()
    folder = await make_folder(tenant.workspace, "Folder")
    nested = await make_file(tenant.workspace, "nested.txt", folder, size=200)
    loose = await make_file(tenant.workspace, "loose.txt", size=100)

    result = await bulk_operations.delete_mixed(db, tenant.caller, [loose.id], [folder.id], object_store)

    assert result.deleted_file_count == 1
    assert result.deleted_folder_count == 1
    assert result.deleted_nested_file_count == 1
    assert result.failed_file_ids == []
    assert result.failed_folder_ids == []
    assert set(object_store.deleted) == {nested.storage_path, loose.storage_path}
    assert await folder_repo.get_folder_by_id(db, folder.id) is None
    assert await file_repo.get_file_by_id(db, loose.id) is None

    await db.refresh(tenant.user)
    assert tenant.user.storage_used == 200


@pytest.mark.asyncio
async def test_delete_mixed_tolerates_partial_storage_failure(db, tenant, make_folder, make_file, object_store):
    ok = await make_file(tenant.workspace, "ok.txt")
    stuck = await make_file(tenant.workspace, "stuck.txt")
    folder = await make_folder(tenant.workspace, "Folder")
    inner = await make_file(tenant.workspace, "inner.txt", folder)
    object_store.failing_paths.update({stuck.storage_path, inner.storage_path})

    result = await bulk_operations.delete_mixed(db, tenant.caller, [ok.id, stuck.id], [folder.id], object_store)

    assert result.deleted_file_count == 1
    assert result.deleted_folder_count == 0
    assert result.failed_file_ids == [stuck.id]
    assert result.failed_folder_ids == [folder.id]
    assert await file_repo.get_file_by_id(db, ok.id) is None
    assert await file_repo.get_file_by_id(db, stuck.id) is not None
    assert await folder_repo.get_folder_by_id(db, folder.id) is not None
    assert await file_repo.get_file_by_id(db, inner.id) is not None


@pytest.mark.asyncio
async def test_delete_mixed_folder_only_selection_with_one_failed_nested_file(
    db, tenant, make_folder, make_file, object_store
):
    folder = await make_folder(tenant.workspace, "Docs")
    gone = await make_file(tenant.workspace, "a.txt", folder)
    stuck = await make_file(tenant.workspace, "b.txt", folder)
    folder_id, gone_id, stuck_id = folder.id, gone.id, stuck.id
    gone_path = gone.storage_path
    object_store.failing_paths.add(stuck.storage_path)

    result = await bulk_operations.delete_mixed(db, tenant.caller, [], [folder_id], object_store)

    assert result.deleted_folder_count == 0
    assert result.deleted_nested_file_count == 1
    assert result.failed_folder_ids == [folder_id]
    assert object_store.deleted == [gone_path]
    assert await file_repo.get_file_by_id(db, gone_id) is None
    assert await file_repo.get_file_by_id(db, stuck_id) is not None
    assert await folder_repo.get_folder_by_id(db, folder_id) is not None

@pytest.mark.asyncio
async def test_delete_mixed_raises_when_nothing_was_deleted(db, tenant, make_file, object_store):
    stuck = await make_file(tenant.workspace, "stuck.txt")
    object_store.failing_paths.add(stuck.storage_path)

    with pytest.raises(StorageFailureError):
        await bulk_operations.delete_mixed(db, tenant.caller, [stuck.id], [], object_store)
    assert await file_repo.get_file_by_id(db, stuck.id) is not None


@pytest.mark.asyncio
async def test_delete_mixed_empty_folder(db, tenant, make_folder, object_store):
    empty = await make_folder(tenant.workspace, "Empty")
    result = await bulk_operations.delete_mixed(db, tenant.caller, [], [empty.id], object_store)
    assert result.deleted_folder_count == 1
    assert object_store.deleted == []


@pytest.mark.asyncio
async def test_delete_mixed_rejects_foreign_ids(db, tenant, other_tenant, make_file, object_store):
    mine = await make_file(tenant.workspace, "mine.txt")
    theirs = await make_file(other_tenant.workspace, "theirs.txt")

    with pytest.raises(ForbiddenError):
        await bulk_operations.delete_mixed(db, tenant.caller, [mine.id, theirs.id], [], object_store)
    assert object_store.deleted == []


# ---------------------------------------------------------------------------
# bulk_download
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bulk_download_builds_zip_with_folder_paths(db, tenant, make_folder, make_file, object_store):
    folder = await make_folder(tenant.workspace, "Photos")
    sub = await make_folder(tenant.workspace, "2024", folder)
    top = await make_file(tenant.workspace, "readme.txt")
    a = await make_file(tenant.workspace, "a.jpg", folder)
    b = await make_file(tenant.workspace, "b.jpg", sub)
    object_store.contents[top.storage_path] = b"hello"

    result = await bulk_operations.bulk_download(
        db, tenant.caller, [top.id], [folder.id], object_store, fetch=object_store.fetch
    )

    with zipfile.ZipFile(io.BytesIO(result.archive)) as archive:
        names = set(archive.namelist())
        assert archive.read("readme.txt") == b"hello"
    assert names == {"readme.txt", "Photos/a.jpg", "Photos/2024/b.jpg"}
    assert set(object_store.signed) == {top.storage_path, a.storage_path, b.storage_path}
    assert result.file_name.endswith(".zip")


@pytest.mark.asyncio
async def test_bulk_download_deduplicates_names(db, tenant, make_folder, make_file, object_store):
    one = await make_folder(tenant.workspace, "One")
    two = await make_folder(tenant.workspace, "Two")
    first = await make_file(tenant.workspace, "report.pdf", one)
    second = await make_file(tenant.workspace, "report.pdf", two)

    result = await bulk_operations.bulk_download(
        db, tenant.caller, [first.id, second.id], [], object_store, fetch=object_store.fetch
    )

    assert sorted(e.archive_path for e in result.entries) == ["report (1).pdf", "report.pdf"]


@pytest.mark.asyncio
async def test_bulk_download_file_selected_directly_and_via_folder_once(
    db, tenant, make_folder, make_file, object_store
):
    folder = await make_folder(tenant.workspace, "Folder")
    file = await make_file(tenant.workspace, "both.txt", folder)

    result = await bulk_operations.bulk_download(
        db, tenant.caller, [file.id], [folder.id], object_store, fetch=object_store.fetch
    )
    assert [e.archive_path for e in result.entries] == ["both.txt"]


@pytest.mark.asyncio
async def test_bulk_download_of_empty_folder(db, tenant, make_folder, object_store):
    empty = await make_folder(tenant.workspace, "Empty")
    with pytest.raises(ValidationError):
        await bulk_operations.bulk_download(db, tenant.caller, [], [empty.id], object_store, fetch=object_store.fetch)


@pytest.mark.asyncio
async def test_bulk_download_rejects_foreign_folder(db, tenant, other_tenant, make_folder, object_store):
    theirs = await make_folder(other_tenant.workspace, "Theirs")
    with pytest.raises(ForbiddenError):
        await bulk_operations.bulk_download(db, tenant.caller, [], [theirs.id], object_store, fetch=object_store.fetch)
    assert object_store.signed == []
