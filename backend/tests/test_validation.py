"""Tests for input validation helpers and request schemas."""

import uuid

import pytest

from app.core.errors import InvalidIdError, ValidationError
from app.core.validation import (
    default_link_slug,
    normalize_slug,
    sanitize_username,
    unique_ids,
    validate_id,
    validate_input,
)
from app.models.file import MAX_BULK_ITEMS, BulkMove, BulkSelection, FileCreate
from app.models.folder import FolderCreate


def test_validate_id_normalizes_case():
    raw = str(uuid.uuid4()).upper()
    assert validate_id(raw) == raw.lower()


@pytest.mark.parametrize("raw", ["", "123", "not-a-uuid", None])
def test_validate_id_rejects_garbage(raw):
    with pytest.raises(InvalidIdError) as exc_info:
        validate_id(raw, "folder_id")
    assert exc_info.value.field == "folder_id"


def test_unique_ids_keeps_first_seen_order():
    assert unique_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_validate_input_maps_bad_id_to_invalid_id_error():
    with pytest.raises(InvalidIdError):
        validate_input(FolderCreate, {"name": "Docs", "parent_folder_id": "nope"})


def test_validate_input_reports_field():
    with pytest.raises(ValidationError) as exc_info:
        validate_input(FolderCreate, {"name": "   "})
    assert exc_info.value.field == "name"
    assert not isinstance(exc_info.value, InvalidIdError)


def test_bulk_selection_collapses_repeats():
    file_id = str(uuid.uuid4())
    selection = validate_input(BulkSelection, {"file_ids": [file_id, file_id.upper()], "folder_ids": []})
    assert selection.file_ids == [file_id]


def test_bulk_selection_requires_items():
    with pytest.raises(ValidationError, match="at least one"):
        validate_input(BulkSelection, {"file_ids": [], "folder_ids": []})


def test_bulk_selection_caps_size():
    ids = [str(uuid.uuid4()) for _ in range(MAX_BULK_ITEMS + 1)]
    with pytest.raises(ValidationError, match="At most"):
        validate_input(BulkSelection, {"file_ids": ids})


def test_bulk_move_target_defaults_to_root():
    move = validate_input(BulkMove, {"file_ids": [str(uuid.uuid4())]})
    assert move.target_folder_id is None


def test_file_create_rejects_path_separators():
    with pytest.raises(ValidationError):
        validate_input(FileCreate, {"file_name": "../etc/passwd", "file_size": 1, "storage_path": "x"})


def test_file_create_rejects_negative_size():
    with pytest.raises(ValidationError):
        validate_input(FileCreate, {"file_name": "a.txt", "file_size": -1, "storage_path": "x"})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("alice", "alice"), ("  bob_smith ", "bob_smith"), ("car-ol!!", "car-ol"), ("Dave Jones", "DaveJones")],
)
def test_sanitize_username(raw, expected):
    assert sanitize_username(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "ab!", "x" * 31])
def test_sanitize_username_rejects(raw):
    with pytest.raises(ValidationError) as exc_info:
        sanitize_username(raw)
    assert exc_info.value.field == "username"


def test_default_link_slug():
    assert default_link_slug("Alice_Doe") == "alice_doe-first-link"


def test_normalize_slug():
    assert normalize_slug("  My-Drop_1 ") == "my-drop_1"
    with pytest.raises(ValidationError):
        normalize_slug("_leading")
