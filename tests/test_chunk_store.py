"""Tests for the chunk store."""

import pytest

from backend.config import settings
from backend.services import chunk_store
from backend.services.exceptions import NotFoundError, StorageIOError


@pytest.fixture(autouse=True)
def share_root(tmp_path):
    original = settings.share_dir
    settings.share_dir = tmp_path / "shares"
    yield settings.share_dir
    settings.share_dir = original


def test_ensure_share_directory_is_idempotent(share_root):
    path = chunk_store.ensure_share_directory("share1")
    assert path == share_root / "share1"
    assert path.is_dir()
    assert chunk_store.ensure_share_directory("share1") == path


def test_append_chunks_in_sequence():
    assert chunk_store.append_chunk("share1", "file1", 0, b"abc") == 3
    assert chunk_store.append_chunk("share1", "file1", 3, b"def") == 6
    with chunk_store.open_for_read("share1", "file1") as f:
        assert f.read() == b"abcdef"


def test_rewriting_a_chunk_replaces_its_range():
    chunk_store.append_chunk("share1", "file1", 0, b"abc")
    chunk_store.append_chunk("share1", "file1", 3, b"defg")
    # Retry of the second chunk with different bytes
    chunk_store.append_chunk("share1", "file1", 3, b"xy")
    with chunk_store.open_for_read("share1", "file1") as f:
        assert f.read() == b"abcxy"


def test_empty_chunk_materializes_file():
    assert chunk_store.append_chunk("share1", "empty", 0, b"") == 0
    path = chunk_store.get_file_path("share1", "empty")
    assert path.is_file()
    assert path.stat().st_size == 0


def test_open_missing_file_raises_not_found():
    chunk_store.ensure_share_directory("share1")
    with pytest.raises(NotFoundError):
        chunk_store.open_for_read("share1", "missing")


def test_handle_is_seekable():
    chunk_store.append_chunk("share1", "file1", 0, b"0123456789")
    with chunk_store.open_for_read("share1", "file1") as f:
        f.seek(5)
        assert f.read(3) == b"567"


@pytest.mark.parametrize("bad_id", ["..", "../etc", "a/b", "", "a\\b"])
def test_unsafe_ids_are_rejected(bad_id):
    with pytest.raises(NotFoundError):
        chunk_store.get_object_path("share1", bad_id)
    with pytest.raises(NotFoundError):
        chunk_store.get_share_dir(bad_id)


def test_delete_all_removes_tree_and_tolerates_missing(share_root):
    chunk_store.append_chunk("share1", "file1", 0, b"abc")
    chunk_store.delete_all("share1")
    assert not (share_root / "share1").exists()
    # Already gone
    chunk_store.delete_all("share1")


def test_delete_file_ignores_missing():
    chunk_store.append_chunk("share1", "file1", 0, b"abc")
    chunk_store.delete_file("share1", "file1")
    chunk_store.delete_file("share1", "file1")
    with pytest.raises(NotFoundError):
        chunk_store.get_file_path("share1", "file1")


def test_share_size_excludes_archive(share_root):
    chunk_store.append_chunk("share1", "a", 0, b"12345")
    chunk_store.append_chunk("share1", "b", 0, b"123")
    (share_root / "share1" / chunk_store.ARCHIVE_NAME).write_bytes(b"zip-bytes")
    assert chunk_store.share_size_on_disk("share1") == 8
    assert chunk_store.share_size_on_disk("unknown") == 0


def test_write_failure_raises_storage_error(share_root):
    # A regular file where the share directory should be
    share_root.mkdir(parents=True)
    (share_root / "share1").write_bytes(b"")
    with pytest.raises(StorageIOError):
        chunk_store.append_chunk("share1", "file1", 0, b"abc")
