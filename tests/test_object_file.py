"""Tests covering the File read/write/seek session on the in-memory backend."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest import mock

import pytest

from f9_vfs import (
    InconsistentWriteError,
    InMemoryObjectStore,
    MemFileSystem,
    NotFoundError,
    ObjectStoreOptions,
    RemoteOperationError,
    ValidationError,
)

if TYPE_CHECKING:
    from pathlib import Path


def _seed(store: InMemoryObjectStore, key: str, data: bytes, container: str = "bucket") -> None:
    upload = store.stream_write(container, key)
    upload.write(data)
    upload.close()


class _ShortUpload:
    """Upload stream that accepts one byte fewer than offered."""

    def __init__(self) -> None:
        self.cancelled = False

    def write(self, data: bytes) -> int:
        return max(len(data) - 1, 0)

    def close(self) -> None:
        """Nothing to commit."""

    def cancel(self) -> None:
        self.cancelled = True


class _FailingUpload:
    """Upload stream whose commit fails."""

    def __init__(self) -> None:
        self.cancelled = False

    def write(self, data: bytes) -> int:
        return len(data)

    def close(self) -> None:
        msg = "commit rejected"
        raise RemoteOperationError(msg, path="/docs/report.txt")

    def cancel(self) -> None:
        self.cancelled = True


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Provide an object store with a single bucket."""
    store = InMemoryObjectStore()
    store.create_container("bucket")
    return store


@pytest.fixture
def spill_dir(tmp_path: Path) -> Path:
    """Directory that receives spill files."""
    directory = tmp_path / "spill"
    directory.mkdir()
    return directory


@pytest.fixture
def fs(store: InMemoryObjectStore, spill_dir: Path) -> MemFileSystem:
    """Provide a filesystem bound to the store and spill directory."""
    return MemFileSystem(ObjectStoreOptions(temp_dir=str(spill_dir)), client=store)


class TestFileProperties:
    """Names, paths and URIs derived from the key."""

    def test_name_path_and_uri(self, fs: MemFileSystem) -> None:
        """A file exposes its basename, absolute path and URI."""
        file = fs.new_file("bucket", "/docs/report.txt")
        assert file.name == "report.txt"
        assert file.path == "/docs/report.txt"
        assert file.volume == "bucket"
        assert file.key == "docs/report.txt"
        assert file.uri == "mem://bucket/docs/report.txt"
        assert str(file) == file.uri

    def test_location_is_parent_directory(self, fs: MemFileSystem) -> None:
        """The location of a file is its containing prefix."""
        location = fs.new_file("bucket", "/docs/report.txt").location
        assert location.path == "/docs/"
        assert location.volume == "bucket"

    def test_path_is_normalised(self, fs: MemFileSystem) -> None:
        """Dot segments are resolved when the file is created."""
        file = fs.new_file("bucket", "/docs/../archive/./old.txt")
        assert file.path == "/archive/old.txt"

    @pytest.mark.parametrize("path", ["docs/report.txt", "/docs/", ""])
    def test_rejects_malformed_paths(self, fs: MemFileSystem, path: str) -> None:
        """Absolute file paths must begin, and not end, with a slash."""
        with pytest.raises(ValidationError):
            fs.new_file("bucket", path)

    def test_rejects_empty_volume(self, fs: MemFileSystem) -> None:
        """Object stores need a bucket name."""
        with pytest.raises(ValidationError):
            fs.new_file("", "/docs/report.txt")


class TestAttributes:
    """exists, size and last_modified."""

    def test_missing_object(self, fs: MemFileSystem) -> None:
        """A missing object does not exist and has no size."""
        file = fs.new_file("bucket", "/missing.txt")
        assert file.exists() is False
        with pytest.raises(NotFoundError):
            file.size()
        with pytest.raises(NotFoundError):
            file.last_modified()

    def test_existing_object(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Attributes come from the stored object."""
        _seed(store, "data.bin", b"12345")
        file = fs.new_file("bucket", "/data.bin")
        assert file.exists() is True
        assert file.size() == 5
        assert file.last_modified().tzinfo is not None


class TestRead:
    """Sequential reads through the lazy range reader."""

    def test_read_in_chunks_until_eof(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Reads advance the cursor and an empty result marks EOF."""
        _seed(store, "hello.txt", b"hello")
        file = fs.new_file("bucket", "/hello.txt")
        assert file.read(2) == b"he"
        assert file.tell() == 2
        assert file.read() == b"llo"
        assert file.read() == b""
        assert file.read(10) == b""
        assert file.tell() == 5

    def test_read_zero_bytes(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """A zero-length read returns immediately."""
        _seed(store, "hello.txt", b"hello")
        file = fs.new_file("bucket", "/hello.txt")
        with mock.patch.object(store, "range_read", wraps=store.range_read) as range_read:
            assert file.read(0) == b""
        range_read.assert_not_called()

    def test_read_missing_object(self, fs: MemFileSystem) -> None:
        """Reading a missing object raises NotFoundError."""
        with pytest.raises(NotFoundError):
            fs.new_file("bucket", "/missing.txt").read()

    def test_empty_object_skips_range_request(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Zero-length objects read as EOF without opening a reader."""
        _seed(store, "empty.txt", b"")
        file = fs.new_file("bucket", "/empty.txt")
        with mock.patch.object(store, "range_read", wraps=store.range_read) as range_read:
            assert file.read() == b""
        range_read.assert_not_called()

    def test_reader_opened_once(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Consecutive reads share one range reader."""
        _seed(store, "hello.txt", b"hello")
        file = fs.new_file("bucket", "/hello.txt")
        with mock.patch.object(store, "range_read", wraps=store.range_read) as range_read:
            file.read(1)
            file.read(1)
            file.read(1)
        range_read.assert_called_once_with("bucket", "hello.txt", 0)


class TestSeek:
    """Cursor arithmetic and its effect on the reader."""

    def test_seek_whence_variants(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """SEEK_SET, SEEK_CUR and SEEK_END all resolve to absolute positions."""
        _seed(store, "digits.txt", b"0123456789")
        file = fs.new_file("bucket", "/digits.txt")
        assert file.seek(4) == 4
        assert file.read(2) == b"45"
        assert file.seek(-3, os.SEEK_CUR) == 3
        assert file.read(1) == b"3"
        assert file.seek(-2, os.SEEK_END) == 8
        assert file.read() == b"89"

    def test_seek_reopens_reader_at_new_offset(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """A seek closes the reader; the next read opens one at the cursor."""
        _seed(store, "digits.txt", b"0123456789")
        file = fs.new_file("bucket", "/digits.txt")
        file.read(1)
        with mock.patch.object(store, "range_read", wraps=store.range_read) as range_read:
            file.seek(7)
            assert file.read() == b"789"
        range_read.assert_called_once_with("bucket", "digits.txt", 7)

    def test_seek_past_end_reads_nothing(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Positions beyond the end are allowed and read as EOF."""
        _seed(store, "short.txt", b"abc")
        file = fs.new_file("bucket", "/short.txt")
        assert file.seek(10) == 10
        assert file.read() == b""

    def test_negative_position_rejected(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """A seek before byte 0 is a validation error and keeps the cursor."""
        _seed(store, "short.txt", b"abc")
        file = fs.new_file("bucket", "/short.txt")
        file.seek(1)
        with pytest.raises(ValidationError):
            file.seek(-5, os.SEEK_CUR)
        assert file.tell() == 1

    def test_invalid_whence_rejected(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Unknown whence values are rejected."""
        _seed(store, "short.txt", b"abc")
        with pytest.raises(ValidationError):
            fs.new_file("bucket", "/short.txt").seek(0, 7)

    def test_seek_on_missing_object(self, fs: MemFileSystem) -> None:
        """Seeking needs the object length, so a missing object fails."""
        with pytest.raises(NotFoundError):
            fs.new_file("bucket", "/missing.txt").seek(0, os.SEEK_END)


class TestWrite:
    """Streaming writes committed on close."""

    def test_write_is_invisible_until_close(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Written bytes become the object only once the file is closed."""
        file = fs.new_file("bucket", "/docs/report.txt")
        assert file.write(b"hello ") == 6
        assert file.write(b"world") == 5
        assert file.tell() == 11
        assert file.exists() is False
        file.close()
        assert file.exists() is True
        assert store.range_read("bucket", "docs/report.txt", 0).read() == b"hello world"

    def test_context_manager_commits(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Leaving the with block closes and commits."""
        with fs.new_file("bucket", "/notes.txt") as file:
            file.write(b"remember")
        assert store.head("bucket", "notes.txt").size == 8

    def test_write_accepts_text(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Strings are encoded as UTF-8."""
        with fs.new_file("bucket", "/unicode.txt") as file:
            file.write("héllo")
        assert store.range_read("bucket", "unicode.txt", 0).read() == "héllo".encode()

    def test_overwrite_replaces_content(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Writing from byte 0 without a seek replaces the whole object."""
        _seed(store, "notes.txt", b"a much longer original body")
        with fs.new_file("bucket", "/notes.txt") as file:
            file.write(b"short")
        assert store.range_read("bucket", "notes.txt", 0).read() == b"short"

    def test_content_type_is_forwarded(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """A content type hint reaches the stored object."""
        with fs.new_file("bucket", "/table.csv", content_type="text/csv") as file:
            file.write(b"a,b\n")
        assert store.head("bucket", "table.csv").content_type == "text/csv"

    def test_close_without_write_creates_nothing(self, fs: MemFileSystem) -> None:
        """Closing an untouched file performs no upload."""
        file = fs.new_file("bucket", "/untouched.txt")
        file.close()
        assert file.exists() is False

    def test_close_is_idempotent(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """A second close has nothing left to commit."""
        file = fs.new_file("bucket", "/once.txt")
        file.write(b"x")
        file.close()
        with mock.patch.object(store, "stream_write", wraps=store.stream_write) as stream_write:
            file.close()
        stream_write.assert_not_called()
        assert file.tell() == 0

    def test_spill_file_removed_after_close(self, fs: MemFileSystem, spill_dir: Path) -> None:
        """The spill file lives only for the duration of the session."""
        file = fs.new_file("bucket", "/report.txt")
        file.write(b"payload")
        spilled = list(spill_dir.iterdir())
        assert len(spilled) == 1
        assert spilled[0].name.startswith("report.txt.")
        file.close()
        assert list(spill_dir.iterdir()) == []


class TestPartialWrite:
    """Writes after a seek or read preserve untouched bytes."""

    def test_seek_then_write_patches_middle(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Bytes outside the written range survive."""
        _seed(store, "greeting.txt", b"hello world")
        with fs.new_file("bucket", "/greeting.txt") as file:
            file.seek(6)
            file.write(b"WORLD")
        assert store.range_read("bucket", "greeting.txt", 0).read() == b"hello WORLD"

    def test_seek_to_start_then_write_keeps_tail(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """An explicit seek to 0 still preserves the bytes after the write."""
        _seed(store, "greeting.txt", b"hello world")
        with fs.new_file("bucket", "/greeting.txt") as file:
            file.seek(0)
            file.write(b"HELLO")
        assert store.range_read("bucket", "greeting.txt", 0).read() == b"HELLO world"

    def test_read_then_write_continues_at_cursor(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """A write after a read lands at the read cursor."""
        _seed(store, "greeting.txt", b"hello world")
        with fs.new_file("bucket", "/greeting.txt") as file:
            assert file.read(6) == b"hello "
            file.write(b"there")
        assert store.range_read("bucket", "greeting.txt", 0).read() == b"hello there"

    def test_write_past_end_extends_object(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Appending after a SEEK_END keeps the original content."""
        _seed(store, "log.txt", b"line1\n")
        with fs.new_file("bucket", "/log.txt") as file:
            file.seek(0, os.SEEK_END)
            file.write(b"line2\n")
        assert store.range_read("bucket", "log.txt", 0).read() == b"line1\nline2\n"

    def test_seek_on_new_object_after_write(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Seeking back into freshly written bytes rewrites them in the spill file."""
        with fs.new_file("bucket", "/fresh.txt") as file:
            file.write(b"abc")
            assert file.seek(0) == 0
            file.write(b"X")
        assert store.range_read("bucket", "fresh.txt", 0).read() == b"Xbc"

    def test_seek_after_write_cancels_upload(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
    ) -> None:
        """Once the upload is cancelled nothing is stored before close."""
        file = fs.new_file("bucket", "/fresh.txt")
        file.write(b"abc")
        file.seek(1)
        assert file.exists() is False
        file.close()
        assert store.range_read("bucket", "fresh.txt", 0).read() == b"abc"

    def test_read_back_written_bytes(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Reads after a write come from the spill file."""
        file = fs.new_file("bucket", "/fresh.txt")
        file.write(b"hello")
        assert file.read() == b""
        file.seek(1)
        assert file.read(3) == b"ell"
        file.close()
        assert store.range_read("bucket", "fresh.txt", 0).read() == b"hello"

    def test_spill_removed_after_partial_write(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
        spill_dir: Path,
    ) -> None:
        """Seeded spill files are removed too."""
        _seed(store, "greeting.txt", b"hello world")
        with fs.new_file("bucket", "/greeting.txt") as file:
            file.seek(3)
            file.write(b"p")
        assert list(spill_dir.iterdir()) == []


class TestWriteFailures:
    """Errors during write and commit."""

    def test_mirrored_write_mismatch(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Divergent byte counts raise and abandon the upload."""
        upload = _ShortUpload()
        monkeypatch.setattr(store, "stream_write", lambda *args, **kwargs: upload)
        file = fs.new_file("bucket", "/diverged.txt")
        with pytest.raises(InconsistentWriteError) as excinfo:
            file.write(b"abcd")
        assert excinfo.value.written == 4
        assert excinfo.value.mirrored == 3
        assert upload.cancelled is True
        file.close()
        assert file.exists() is False

    def test_commit_failure_propagates_and_resets(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
        spill_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failed commit surfaces the error after cleaning up the session."""
        upload = _FailingUpload()
        monkeypatch.setattr(store, "stream_write", lambda *args, **kwargs: upload)
        file = fs.new_file("bucket", "/docs/report.txt")
        file.write(b"data")
        with pytest.raises(RemoteOperationError, match="commit rejected"):
            file.close()
        assert upload.cancelled is True
        assert file.tell() == 0
        assert list(spill_dir.iterdir()) == []

    def test_commit_failure_notes_cleanup_failure(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The commit error wins and the cleanup error is attached as a note."""
        upload = _FailingUpload()
        monkeypatch.setattr(store, "stream_write", lambda *args, **kwargs: upload)
        file = fs.new_file("bucket", "/docs/report.txt")
        file.write(b"data")

        def refuse_remove(path: str) -> None:
            raise PermissionError(path)

        monkeypatch.setattr("f9_vfs.object_file.os.remove", refuse_remove)
        with pytest.raises(RemoteOperationError, match="commit rejected") as excinfo:
            file.close()
        assert any("Spill file cleanup also failed" in note for note in excinfo.value.__notes__)
        assert file.tell() == 0

    def test_cleanup_failure_after_commit(
        self,
        fs: MemFileSystem,
        store: InMemoryObjectStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A spill file that cannot be removed fails close, yet the object is stored."""
        file = fs.new_file("bucket", "/docs/report.txt")
        file.write(b"data")

        def refuse_remove(path: str) -> None:
            raise PermissionError(path)

        monkeypatch.setattr("f9_vfs.object_file.os.remove", refuse_remove)
        with pytest.raises(RemoteOperationError, match="Failed to remove spill file") as excinfo:
            file.close()
        assert isinstance(excinfo.value.cause, PermissionError)
        assert isinstance(excinfo.value.__cause__, PermissionError)
        monkeypatch.undo()
        assert store.range_read("bucket", "docs/report.txt", 0).read() == b"data"


class TestConsistencyPolling:
    """Optional wait for the committed object to become visible."""

    def test_close_polls_until_visible(self, store: InMemoryObjectStore) -> None:
        """With polling enabled, close checks the object exists."""
        fs = MemFileSystem(
            ObjectStoreOptions(consistency_retries=3, consistency_delay=0),
            client=store,
        )
        file = fs.new_file("bucket", "/visible.txt")
        file.write(b"x")
        with mock.patch.object(store, "head", wraps=store.head) as head:
            file.close()
        head.assert_called_once_with("bucket", "visible.txt")

    def test_close_without_polling(self, fs: MemFileSystem, store: InMemoryObjectStore) -> None:
        """Polling is off by default."""
        file = fs.new_file("bucket", "/visible.txt")
        file.write(b"x")
        with mock.patch.object(store, "head", wraps=store.head) as head:
            file.close()
        head.assert_not_called()
