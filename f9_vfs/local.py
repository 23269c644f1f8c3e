"""Local filesystem backend.

Presents a directory tree through the same object-store protocol as S3 and
GCS, so local files go through the identical File state machine.

Storage Mechanism:
    A volume is a directory directly below the configured root (the empty
    volume is the root itself) and a key is a path inside it. Commits write
    a sibling temporary file and ``os.replace`` it over the target, so
    readers never observe a half-written object.

Path Validation:
    Every key is resolved against the root with symlinks followed, and
    anything that escapes the root is rejected.

Example:

    >>> from f9_vfs.local import LocalOptions, OSFileSystem
    >>> fs = OSFileSystem(LocalOptions(root="/data"))
    >>> with fs.new_file("", "/reports/summary.txt") as f:
    ...     f.write(b"Hello, world!")
    >>> fs.new_location("", "/reports/").list()
    ['summary.txt']

"""

from __future__ import annotations

import mimetypes
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, BinaryIO, Callable, TypeVar

from .interfaces import NotFoundError, RemoteOperationError, ValidationError
from .object_filesystem import ObjectFileSystem
from .object_location import ObjectLocation
from .options import ObjectStoreOptions
from .path_utils import (
    detect_path_traversal_posix,
    file_uri,
    normalize_windows_path,
    remove_leading_slash,
)
from .remote import ListPage, ObjectAttributes, ObjectEntry, ObjectVersion

if TYPE_CHECKING:
    from collections.abc import Hashable

T = TypeVar("T")

# Local files have a single, current version.
CURRENT_VERSION_ID = "0"


@dataclass(frozen=True)
class LocalOptions(ObjectStoreOptions):
    """Root directory for the local backend; the filesystem root by default."""

    root: str | None = None
    create_root: bool = True


class _LocalUpload:
    """Upload stream writing to a temporary sibling of the target."""

    def __init__(self, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        self._handle: BinaryIO | None = os.fdopen(fd, "wb")
        self._temp_path = temp_path
        self._target = target

    def write(self, data: bytes) -> int:
        if self._handle is None:
            message = "Upload stream already closed"
            raise RemoteOperationError(message, path=str(self._target))
        return self._handle.write(data)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
            os.replace(self._temp_path, self._target)
        except OSError as exc:
            message = "Failed to commit local file"
            raise RemoteOperationError(message, path=str(self._target), cause=exc) from exc

    def cancel(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        handle.close()
        Path(self._temp_path).unlink(missing_ok=True)


class LocalDiskClient:
    """Object store protocol over a directory tree."""

    def __init__(self, root: str | Path | None = None, *, create_root: bool = True) -> None:
        base = Path(root or Path.cwd()).expanduser()
        self._root = base.resolve(strict=False)
        if create_root:
            self._root.mkdir(parents=True, exist_ok=True)
        elif not self._root.exists():
            raise NotFoundError(str(self._root))

    @property
    def root(self) -> Path:
        """Absolute path used as the backend root."""
        return self._root

    def _container_dir(self, container: str) -> Path:
        if not container:
            return self._root
        return self._ensure_within_root(container)

    def _ensure_within_root(self, relative: str) -> Path:
        """Resolve a root-relative POSIX path and reject escapes.

        Raises:
            ValidationError: If the path leaves the root, including via
                symlinks.

        """
        posix = PurePosixPath(normalize_windows_path(relative))
        candidate = (self._root / Path(*posix.parts)).resolve(strict=False)
        if detect_path_traversal_posix(posix.parts):
            raise ValidationError.path_outside_root(relative)
        try:
            candidate.relative_to(self._root)
        except ValueError as exc:
            raise ValidationError.path_outside_root(relative) from exc
        return candidate

    def _object_path(self, container: str, key: str) -> Path:
        return self._ensure_within_root(
            remove_leading_slash(f"{container}/{key}" if container else key),
        )

    def _call(self, container: str, key: str, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except FileNotFoundError as exc:
            raise NotFoundError(file_uri("file", container, key)) from exc
        except OSError as exc:
            message = "Local filesystem operation failed"
            raise RemoteOperationError(
                message,
                path=file_uri("file", container, key),
                cause=exc,
            ) from exc

    def _existing_file(self, container: str, key: str) -> Path:
        target = self._object_path(container, key)
        if not target.is_file():
            raise NotFoundError(file_uri("file", container, key))
        return target

    def head(self, container: str, key: str) -> ObjectAttributes:
        target = self._existing_file(container, key)
        stat_result = self._call(container, key, target.stat)
        return ObjectAttributes(
            size=stat_result.st_size,
            last_modified=_timestamp_to_datetime(stat_result.st_mtime),
            content_type=mimetypes.guess_type(target.name)[0],
        )

    def range_read(self, container: str, key: str, start: int) -> BinaryIO:
        target = self._existing_file(container, key)
        handle = self._call(container, key, lambda: target.open("rb"))
        handle.seek(start)
        return handle

    def stream_write(
        self,
        container: str,
        key: str,
        content_type: str | None = None,
    ) -> _LocalUpload:
        target = self._object_path(container, key)
        return self._call(container, key, lambda: _LocalUpload(target))

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        content_type: str | None = None,
    ) -> None:
        source = self._existing_file(source_container, source_key)
        upload = self.stream_write(dest_container, dest_key)

        def run() -> None:
            with source.open("rb") as handle:
                shutil.copyfileobj(handle, upload)
            upload.close()

        try:
            self._call(source_container, source_key, run)
        except Exception:
            upload.cancel()
            raise

    def remove(
        self,
        container: str,
        key: str,
        version_id: str | None = None,
    ) -> None:
        if version_id not in (None, CURRENT_VERSION_ID):
            raise NotFoundError(file_uri("file", container, key))
        target = self._existing_file(container, key)
        self._call(container, key, target.unlink)

    def list_versions(self, container: str, prefix: str) -> list[ObjectVersion]:
        return [
            ObjectVersion(key=key, version_id=CURRENT_VERSION_ID)
            for key in self._walk_keys(container, prefix, recursive=True)
        ]

    def list_objects(
        self,
        container: str,
        prefix: str,
        delimiter: str,
        token: str | None = None,
    ) -> ListPage:
        base = self._container_dir(container)
        if not base.is_dir():
            raise NotFoundError(file_uri("file", container, "/"))
        entries = [
            ObjectEntry(key=key, size=self._object_path(container, key).stat().st_size)
            for key in self._walk_keys(container, prefix, recursive=not delimiter)
        ]
        return ListPage(entries=entries)

    def _walk_keys(self, container: str, prefix: str, *, recursive: bool) -> list[str]:
        base = self._container_dir(container)
        directory = base / Path(*PurePosixPath(prefix).parent.parts)
        if prefix.endswith("/"):
            directory = base / Path(*PurePosixPath(prefix).parts)
        if not directory.is_dir():
            return []
        candidates = directory.rglob("*") if recursive else directory.iterdir()
        keys = []
        for path in candidates:
            if not path.is_file():
                continue
            key = path.relative_to(base).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def container_exists(self, container: str) -> bool:
        return self._container_dir(container).is_dir()

    def directory_exists(self, container: str, prefix: str) -> bool:
        if not prefix:
            return self.container_exists(container)
        return self._object_path(container, prefix).is_dir()

    def update_metadata(
        self,
        container: str,
        key: str,
        metadata: dict[str, str],
    ) -> None:
        # Arbitrary metadata has nowhere to live; only the timestamp changes.
        target = self._existing_file(container, key)
        self._call(container, key, lambda: os.utime(target))

    def versioning_enabled(self, container: str) -> bool:
        return False


class OSLocation(ObjectLocation):
    """Location whose existence is that of its directory."""

    def exists(self) -> bool:
        return self.filesystem.client.directory_exists(self.volume, self.prefix)


class OSFileSystem(ObjectFileSystem):
    """FileSystem for the ``file`` scheme."""

    scheme = "file"
    name = "Local Filesystem"
    options_class = LocalOptions
    location_class = OSLocation
    requires_volume = False

    @property
    def options(self) -> LocalOptions:
        return self._options

    def _build_client(self) -> LocalDiskClient:
        root = self.options.root or "/"
        return LocalDiskClient(root, create_root=self.options.create_root)

    def credential_scope(self) -> Hashable:
        return str(self.client.root)


def _timestamp_to_datetime(timestamp: float) -> datetime:
    """Convert a POSIX timestamp to an aware datetime in UTC."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
