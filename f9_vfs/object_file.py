"""File state machine shared by every object-store backend.

Object stores only offer whole-object PUT, range GET and streaming PUT. This
module emulates a random-access file on top of them:

- Reads open a range reader at the current cursor, lazily.
- The first write always creates a local spill file. If nothing was read or
  sought yet, an upload stream is opened too and every write is mirrored to
  both. Otherwise the spill file is seeded with the current object so that
  untouched bytes survive.
- Seeking, or reading after a write, cancels the upload stream. From then on
  the spill file alone holds the session's bytes.
- ``close`` is the only commit point. It finishes the upload stream if one is
  still live, otherwise uploads the spill file from byte 0 when something was
  written. The spill file is always removed and the session reset afterwards.
"""

from __future__ import annotations

import logging
import os
import posixpath
import tempfile
import time
from typing import TYPE_CHECKING, BinaryIO

from .interfaces import (
    File,
    NotFoundError,
    PartialMoveError,
    RemoteOperationError,
    VFSError,
)
from .path_utils import (
    ensure_trailing_slash,
    key_from_path,
    validate_absolute_file_path,
)
from .utils import (
    MirroredWriter,
    coerce_to_bytes,
    read_all,
    seek_to,
    touch_copy_buffered,
    update_last_modified_by_moving,
    wait_until_file_exists,
)
from .validation import (
    validate_copy_seek_position,
    validate_mirrored_write,
    validate_volume,
)

if TYPE_CHECKING:
    from datetime import datetime

    from .interfaces import Location
    from .object_filesystem import ObjectFileSystem
    from .remote import ObjectAttributes, ObjectStoreClient, UploadStream

logger = logging.getLogger(__name__)

# Throwaway metadata key written and removed by touch to bump the timestamp.
TOUCH_METADATA_KEY = "vfs-touch"


class ObjectFile(File):
    """A File backed by an :class:`~f9_vfs.remote.ObjectStoreClient`."""

    def __init__(
        self,
        filesystem: ObjectFileSystem,
        volume: str,
        path: str,
        *,
        content_type: str | None = None,
    ) -> None:
        validate_absolute_file_path(path)
        if filesystem.requires_volume:
            validate_volume(volume, path)
        self._filesystem = filesystem
        self._volume = volume
        self._path = posixpath.normpath(path)
        self._content_type = content_type
        self._reset_session()

    def _reset_session(self) -> None:
        self._cursor = 0
        self._seek_called = False
        self._read_called = False
        self._write_called = False
        self._read_eof_seen = False
        self._reader: BinaryIO | None = None
        self._spill: BinaryIO | None = None
        self._spill_path: str | None = None
        self._upload: UploadStream | None = None
        self._writer: MirroredWriter | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri!r})"

    @property
    def filesystem(self) -> ObjectFileSystem:
        return self._filesystem

    @property
    def volume(self) -> str:
        return self._volume

    @property
    def key(self) -> str:
        """Return the object key (the path without its leading slash)."""
        return key_from_path(self._path)

    @property
    def content_type(self) -> str | None:
        return self._content_type

    @property
    def name(self) -> str:
        return posixpath.basename(self._path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def location(self) -> Location:
        directory = ensure_trailing_slash(posixpath.dirname(self._path))
        return self._filesystem.new_location(self._volume, directory)

    @property
    def _client(self) -> ObjectStoreClient:
        return self._filesystem.client

    # Attributes

    def _attributes(self) -> ObjectAttributes:
        return self._filesystem.retry(
            lambda: self._client.head(self._volume, self.key),
        )

    def exists(self) -> bool:
        try:
            self._attributes()
        except NotFoundError:
            return False
        return True

    def size(self) -> int:
        return self._attributes().size

    def last_modified(self) -> datetime:
        return self._attributes().last_modified

    # Session

    def tell(self) -> int:
        return self._cursor

    def read(self, size: int = -1) -> bytes:
        if size == 0:
            return b""
        if self._read_eof_seen:
            self._read_called = True
            return b""

        if self._writer is not None:
            # Reading back written bytes makes the upload stream unusable.
            self._abandon_upload()
            self._spill.seek(self._cursor)
            data = self._spill.read(size)
        else:
            reader = self._acquire_reader()
            if reader is None:
                data = b""
            elif size < 0:
                data = read_all(reader)
            else:
                data = reader.read(size)

        if not data:
            self._read_eof_seen = True
        self._cursor += len(data)
        self._read_called = True
        return data

    def _acquire_reader(self) -> BinaryIO | None:
        if self._reader is not None:
            return self._reader
        attributes = self._attributes()
        if attributes.size == 0 or self._cursor >= attributes.size:
            # Range requests on empty objects are rejected by some stores.
            self._read_eof_seen = True
            return None
        start = self._cursor
        self._reader = self._filesystem.retry(
            lambda: self._client.range_read(self._volume, self.key, start),
        )
        logger.debug("Opened range reader for %s at offset %d", self, start)
        return self._reader

    def _close_reader(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if self._writer is not None:
            length = self._spill_length()
        else:
            length = self._attributes().size
        position = seek_to(length, self._cursor, offset, whence)

        self._close_reader()
        self._abandon_upload()
        if self._spill is not None:
            self._spill.seek(position)

        self._cursor = position
        self._seek_called = True
        self._read_eof_seen = position >= length
        return position

    def _spill_length(self) -> int:
        self._spill.flush()
        return os.fstat(self._spill.fileno()).st_size

    def write(self, data: bytes) -> int:
        payload = coerce_to_bytes(data)
        if self._writer is None:
            self._open_writers()
        written = self._writer.write(payload)
        self._cursor += written
        self._write_called = True
        self._read_eof_seen = False
        return written

    def _open_writers(self) -> None:
        options = self._filesystem.options
        fd, spill_path = tempfile.mkstemp(
            prefix=f"{self.name}.{time.time_ns()}.",
            dir=options.spill_dir,
        )
        self._spill = os.fdopen(fd, "w+b")
        self._spill_path = spill_path
        logger.debug("Created spill file %s for %s", spill_path, self)

        upload = None
        try:
            if self._seek_called or self._read_called:
                self._close_reader()
                self._seed_spill()
                self._spill.seek(self._cursor)
            else:
                upload = self._client.stream_write(
                    self._volume,
                    self.key,
                    self._content_type,
                )
        except Exception:
            self._discard_spill()
            raise
        self._upload = upload
        self._writer = MirroredWriter(self._spill, upload, self._on_write_mismatch)

    def _seed_spill(self) -> None:
        try:
            attributes = self._attributes()
        except NotFoundError:
            return
        if attributes.size == 0:
            return
        source = self._filesystem.retry(
            lambda: self._client.range_read(self._volume, self.key, 0),
        )
        try:
            copied = touch_copy_buffered(
                self._spill,
                source,
                self._filesystem.options.copy_buffer_size,
            )
        finally:
            source.close()
        logger.debug("Seeded spill file for %s with %d bytes", self, copied)

    def _on_write_mismatch(self, written: int, mirrored: int) -> None:
        self._abandon_upload()
        validate_mirrored_write(self._path, written=written, mirrored=mirrored)

    def _abandon_upload(self) -> None:
        if self._writer is not None:
            self._writer.detach()
        upload, self._upload = self._upload, None
        if upload is not None:
            upload.cancel()
            logger.debug("Cancelled upload stream for %s", self)

    def close(self) -> None:
        self._close_reader()
        commit_error: Exception | None = None
        committed = False
        try:
            committed = self._commit()
        except Exception as exc:
            commit_error = exc
        cleanup_error = self._discard_session()

        if commit_error is not None:
            if cleanup_error is not None:
                commit_error.add_note(f"Spill file cleanup also failed: {cleanup_error}")
            raise commit_error
        if cleanup_error is not None:
            message = "Failed to remove spill file"
            raise RemoteOperationError(
                message,
                path=self._path,
                cause=cleanup_error,
            ) from cleanup_error

        options = self._filesystem.options
        if committed and options.consistency_retries > 0:
            wait_until_file_exists(
                self,
                retries=options.consistency_retries,
                delay=options.consistency_delay,
            )

    def _commit(self) -> bool:
        upload, self._upload = self._upload, None
        if upload is not None:
            try:
                upload.close()
            except Exception:
                upload.cancel()
                raise
            logger.debug("Committed streamed upload for %s", self)
            return True

        if self._spill is not None and self._write_called:
            self._spill.flush()
            self._spill.seek(0)
            stream = self._client.stream_write(
                self._volume,
                self.key,
                self._content_type,
            )
            try:
                touch_copy_buffered(
                    stream,
                    self._spill,
                    self._filesystem.options.copy_buffer_size,
                )
                stream.close()
            except Exception:
                stream.cancel()
                raise
            logger.debug("Committed spill file for %s", self)
            return True
        return False

    def _discard_session(self) -> OSError | None:
        self._close_reader()
        self._abandon_upload()
        cleanup_error = self._discard_spill()
        self._reset_session()
        return cleanup_error

    def _discard_spill(self) -> OSError | None:
        spill, spill_path = self._spill, self._spill_path
        self._spill = None
        self._spill_path = None
        if spill is None:
            return None
        error: OSError | None = None
        try:
            spill.close()
        except OSError as exc:
            error = exc
        try:
            os.remove(spill_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            error = error or exc
        logger.debug("Removed spill file %s", spill_path)
        return error

    # Copy, move, delete and touch

    def same_backend_and_credentials(self, other: File) -> bool:
        if not isinstance(other, ObjectFile):
            return False
        mine, theirs = self._filesystem, other.filesystem
        return (
            mine.scheme == theirs.scheme
            and mine.credential_scope() == theirs.credential_scope()
        )

    def copy_to_file(self, target: File) -> None:
        validate_copy_seek_position(self)
        if self.same_backend_and_credentials(target):
            self._filesystem.retry(
                lambda: self._client.copy(
                    self._volume,
                    self.key,
                    target.volume,
                    target.key,
                    self._content_type,
                ),
            )
            logger.debug("Native copy %s -> %s", self, target)
            return

        touch_copy_buffered(target, self, self._filesystem.options.copy_buffer_size)
        target.close()
        self.close()
        logger.debug("Buffered copy %s -> %s", self, target)

    def copy_to_location(self, location: Location) -> File:
        target = location.new_file(self.name)
        self.copy_to_file(target)
        return target

    def move_to_file(self, target: File) -> None:
        self.copy_to_file(target)
        try:
            self.delete()
        except VFSError as exc:
            raise PartialMoveError(self._path, destination=target) from exc

    def move_to_location(self, location: Location) -> File:
        target = location.new_file(self.name)
        self.move_to_file(target)
        return target

    def delete(self, *, all_versions: bool = False) -> None:
        cleanup_error = self._discard_session()
        if cleanup_error is not None:
            logger.warning("Could not remove spill file for %s: %s", self, cleanup_error)

        if not all_versions:
            self._client.remove(self._volume, self.key)
            return

        versions = self._filesystem.retry(
            lambda: self._client.list_versions(self._volume, self.key),
        )
        for version in versions:
            if version.key != self.key:
                continue
            self._client.remove(self._volume, self.key, version.version_id)
        logger.debug("Deleted every version of %s", self)

    def touch(self) -> None:
        if not self.exists():
            self.write(b"")
            self.close()
            return

        versioned = self._filesystem.retry(
            lambda: self._client.versioning_enabled(self._volume),
        )
        if versioned:
            update_last_modified_by_moving(self)
            return

        metadata = dict(self._attributes().metadata)
        self._client.update_metadata(
            self._volume,
            self.key,
            {**metadata, TOUCH_METADATA_KEY: str(time.time_ns())},
        )
        self._client.update_metadata(self._volume, self.key, metadata)
