"""Tests for the local filesystem storage provider."""

import io
import os

import pytest

from storage_archiver.common.errors import ObjectNotFoundError, StorageOperationError
from storage_archiver.infra.storage.filesystem_provider import FilesystemStorageProvider


class _FailingReader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._sent = False

    def read(self, size: int = -1) -> bytes:
        if self._sent:
            raise OSError("simulated read failure")
        self._sent = True
        return self._data


@pytest.fixture
def provider(tmp_path):
    return FilesystemStorageProvider(tmp_path)


@pytest.fixture
def source_tree(tmp_path):
    root = tmp_path / "input"
    (root / "b").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"A")
    (root / "b" / "c.txt").write_bytes(b"CCC")
    (root / "b" / "d.log").write_bytes(b"DD")
    return root


class TestListObjects:
    def test_lists_files_recursively_in_order(self, provider, source_tree):
        objects = provider.list_objects(container="input")
        assert [obj.key for obj in objects] == ["a.txt", "b/c.txt", "b/d.log"]
        assert [obj.size for obj in objects] == [1, 3, 2]
        assert all(obj.last_modified is not None for obj in objects)

    def test_filters_by_prefix(self, provider, source_tree):
        objects = provider.list_objects(container="input", prefix="b/c")
        assert [obj.key for obj in objects] == ["b/c.txt"]

    def test_honours_max_keys(self, provider, source_tree):
        assert len(provider.list_objects(container="input", max_keys=2)) == 2

    def test_missing_directory_lists_nothing(self, provider):
        assert provider.list_objects(container="nope") == []

    def test_missing_prefix_directory_lists_nothing(self, provider, source_tree):
        assert provider.list_objects(container="input", prefix="nope/x") == []

    def test_container_that_is_a_file_fails(self, provider, tmp_path):
        (tmp_path / "data.txt").write_bytes(b"not a directory")
        with pytest.raises(StorageOperationError) as exc_info:
            provider.list_objects(container="data.txt")
        assert exc_info.value.message.startswith("Failed to list objects:")

    def test_unreadable_directory_fails(self, provider, source_tree, monkeypatch):
        def deny(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(os, "scandir", deny)
        with pytest.raises(StorageOperationError) as exc_info:
            provider.list_objects(container="input")
        assert "Permission denied" in exc_info.value.message

    def test_skips_in_progress_uploads(self, provider, source_tree):
        (source_tree / ".upload-123-archive.zip").write_bytes(b"partial")
        keys = [obj.key for obj in provider.list_objects(container="input")]
        assert ".upload-123-archive.zip" not in keys


class TestObjects:
    def test_get_object_stream(self, provider, source_tree):
        with provider.get_object_stream(container="input", key="b/c.txt") as stream:
            assert stream.read() == b"CCC"

    def test_get_object_stream_missing(self, provider, source_tree):
        with pytest.raises(ObjectNotFoundError) as exc_info:
            provider.get_object_stream(container="input", key="missing.txt")
        assert exc_info.value.message == "File not found: missing.txt"

    def test_get_object_stream_on_directory(self, provider, source_tree):
        with pytest.raises(ObjectNotFoundError):
            provider.get_object_stream(container="input", key="b")

    def test_upload_object_creates_parent_directories(self, provider, tmp_path):
        result = provider.upload_object(
            container="out/",
            key="nested/archive.zip",
            stream=io.BytesIO(b"zip-bytes"),
        )
        target = tmp_path / "out" / "nested" / "archive.zip"
        assert target.read_bytes() == b"zip-bytes"
        assert result.key == "nested/archive.zip"
        assert result.location == target.resolve().as_uri()

    def test_failed_upload_leaves_nothing_behind(self, provider, tmp_path):
        existing = tmp_path / "out" / "archive.zip"
        existing.parent.mkdir()
        existing.write_bytes(b"previous")

        with pytest.raises(StorageOperationError) as exc_info:
            provider.upload_object(
                container="out",
                key="archive.zip",
                stream=_FailingReader(b"x" * 10),
            )

        assert exc_info.value.message.startswith("Upload failed:")
        assert existing.read_bytes() == b"previous"
        assert sorted(p.name for p in existing.parent.iterdir()) == ["archive.zip"]

    def test_exists_delete_and_url(self, provider, source_tree):
        assert provider.object_exists(container="input", key="a.txt") is True
        url = provider.get_object_url(container="input", key="a.txt")
        assert url == (source_tree / "a.txt").resolve().as_uri()

        provider.delete_object(container="input", key="a.txt")
        provider.delete_object(container="input", key="a.txt")
        assert provider.object_exists(container="input", key="a.txt") is False
        with pytest.raises(ObjectNotFoundError):
            provider.get_object_url(container="input", key="a.txt")

    def test_create_container(self, provider, tmp_path):
        provider.create_container(container="new/dir")
        assert (tmp_path / "new" / "dir").is_dir()
