"""Core interfaces and error types for virtual filesystem backends."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, TypeVar

if TYPE_CHECKING:
    from datetime import datetime

T = TypeVar("T")

# Smallest buffer used when copying between files that cannot share a native copy.
TOUCH_COPY_MIN_BUFFER_SIZE = 262144


class VFSError(RuntimeError):
    """Base exception for virtual filesystem operations."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
    ) -> None:
        """Initialise the base error with an optional object path context."""
        detail = message if path is None else ": ".join((message, str(path)))
        super().__init__(detail)
        self.message = message
        self.path = path


class NotFoundError(VFSError):
    """Raised when an object or container does not exist."""

    def __init__(self, path: str) -> None:
        """Create a not-found error for the provided path."""
        super().__init__("Object not found", path=path)


class ValidationError(VFSError):
    """Raised when an argument is malformed; never retried."""

    @classmethod
    def bad_absolute_file_path(cls, path: str) -> ValidationError:
        """Return an error for an absolute file path that is not well formed."""
        return cls(
            "Absolute file path must begin with a slash and not end with one",
            path=path,
        )

    @classmethod
    def bad_relative_file_path(cls, path: str) -> ValidationError:
        """Return an error for a relative file path that is not well formed."""
        return cls(
            "Relative file path must not begin or end with a slash",
            path=path,
        )

    @classmethod
    def bad_absolute_location_path(cls, path: str) -> ValidationError:
        """Return an error for an absolute location path that is not well formed."""
        return cls(
            "Absolute location path must begin and end with a slash",
            path=path,
        )

    @classmethod
    def bad_relative_location_path(cls, path: str) -> ValidationError:
        """Return an error for a relative location path that is not well formed."""
        return cls(
            "Relative location path must end with a slash and not begin with one",
            path=path,
        )

    @classmethod
    def bad_prefix(cls, prefix: str) -> ValidationError:
        """Return an error for a listing prefix that cannot be used."""
        return cls("Prefix must be a non-empty relative path", path=prefix)

    @classmethod
    def invalid_whence(cls, whence: int) -> ValidationError:
        """Return an error for an unknown seek origin."""
        return cls(f"Invalid whence value {whence!r}")

    @classmethod
    def negative_seek_offset(cls, position: int) -> ValidationError:
        """Return an error for a seek that lands before the start of the file."""
        return cls(f"Seek would move to negative position {position}")

    @classmethod
    def path_outside_root(cls, path: str) -> ValidationError:
        """Return an error showing the path escapes the backend root."""
        return cls("Path escapes backend root", path=path)

    @classmethod
    def empty_volume(cls, path: str) -> ValidationError:
        """Return an error for a file or location without a container."""
        return cls("Volume must not be empty", path=path)


class PreconditionFailedError(VFSError):
    """Raised when local state forbids an operation; never retried."""

    @classmethod
    def copy_cursor_not_at_start(cls, path: str) -> PreconditionFailedError:
        """Return an error for a copy from a partially consumed file."""
        return cls("File cursor must be at position 0 before copying", path=path)


class RemoteOperationError(VFSError):
    """Raised when the backend fails for any reason other than not-found."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialise a remote error wrapping the backend failure."""
        super().__init__(message, path=path)
        self.cause = cause

    @classmethod
    def missing_dependency(cls, package: str) -> RemoteOperationError:
        """Return an error when an optional backend SDK is not installed."""
        return cls(f"The '{package}' package is required for this backend")


class InconsistentWriteError(VFSError):
    """Raised when the spill file and remote stream accept different byte counts."""

    def __init__(self, path: str, *, written: int, mirrored: int) -> None:
        """Create an inconsistency error with both byte counts."""
        super().__init__(
            f"Write diverged: spill file took {written} bytes, "
            f"remote stream took {mirrored}",
            path=path,
        )
        self.written = written
        self.mirrored = mirrored


class PartialMoveError(VFSError):
    """Raised when a move copied the data but could not delete the source."""

    def __init__(self, path: str, *, destination: File) -> None:
        """Create a partial move error carrying the created destination."""
        super().__init__("Copied but failed to delete source", path=path)
        self.destination = destination


class FileSystem(ABC):
    """Factory for locations and files that share one backend configuration."""

    scheme: str = ""
    name: str = ""

    @abstractmethod
    def new_file(self, volume: str, absolute_path: str) -> File:
        """Return a file handle for an absolute key within a volume.

        Args:
            volume: Container identifier (bucket, or root directory name).
            absolute_path: Slash-prefixed path of the object.

        Returns:
            File bound to the resolved key. No remote I/O is performed.

        """

    @abstractmethod
    def new_location(self, volume: str, absolute_path: str) -> Location:
        """Return a location for an absolute prefix within a volume.

        Args:
            volume: Container identifier.
            absolute_path: Slash-prefixed path that also ends with a slash.

        Returns:
            Location bound to the normalised prefix.

        """

    @abstractmethod
    def retry(self, operation: Callable[[], T]) -> T:
        """Run a remote operation under the configured retry policy."""


class Location(ABC):
    """A prefix (directory) inside a container."""

    @property
    @abstractmethod
    def volume(self) -> str:
        """Return the container identifier."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Return the absolute prefix, always ending with a slash."""

    @property
    @abstractmethod
    def filesystem(self) -> FileSystem:
        """Return the filesystem that created this location."""

    @property
    def uri(self) -> str:
        """Return the fully qualified URI of the location."""
        from .path_utils import location_uri

        return location_uri(self.filesystem.scheme, self.volume, self.path)

    def __str__(self) -> str:
        return self.uri

    @abstractmethod
    def list(self) -> list[str]:
        """Return basenames of the objects under this location.

        Returns:
            Basenames of every file, with directory marker objects removed.

        """

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> list[str]:
        """Return basenames of objects whose relative key starts with ``prefix``."""

    @abstractmethod
    def list_by_regex(self, pattern: str) -> list[str]:
        """Return basenames from :meth:`list` matching ``pattern``."""

    @abstractmethod
    def exists(self) -> bool:
        """Return whether the underlying container exists."""

    @abstractmethod
    def new_location(self, relative_path: str) -> Location:
        """Return a new location resolved relative to this one."""

    @abstractmethod
    def change_dir(self, relative_path: str) -> None:
        """Move this location to a path resolved relative to its prefix."""

    @abstractmethod
    def new_file(self, relative_path: str) -> File:
        """Return a file resolved relative to this location."""

    @abstractmethod
    def delete_file(self, name: str) -> None:
        """Delete the named file relative to this location."""


class File(ABC):
    """One addressable object with a read/write/seek session ending in close."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the basename of the object key."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Return the absolute key of the object, with a leading slash."""

    @property
    @abstractmethod
    def location(self) -> Location:
        """Return the location holding this file."""

    @property
    def uri(self) -> str:
        """Return the fully qualified URI of the file."""
        from .path_utils import file_uri

        location = self.location
        return file_uri(location.filesystem.scheme, location.volume, self.path)

    def __str__(self) -> str:
        return self.uri

    def __enter__(self) -> File:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @abstractmethod
    def exists(self) -> bool:
        """Return whether the object exists; a missing object is not an error."""

    @abstractmethod
    def size(self) -> int:
        """Return the object size in bytes.

        Raises:
            NotFoundError: If the object does not exist.

        """

    @abstractmethod
    def last_modified(self) -> datetime:
        """Return the object's last modification time.

        Raises:
            NotFoundError: If the object does not exist.

        """

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes from the cursor; ``b""`` signals EOF."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write bytes at the cursor and return the number written."""

    @abstractmethod
    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the cursor and return the new absolute position."""

    @abstractmethod
    def tell(self) -> int:
        """Return the cursor position."""

    @abstractmethod
    def close(self) -> None:
        """Commit pending writes, release resources and reset the session."""

    @abstractmethod
    def same_backend_and_credentials(self, other: File) -> bool:
        """Return whether a native remote copy to ``other`` is possible."""

    @abstractmethod
    def copy_to_file(self, target: File) -> None:
        """Copy this file's content to ``target``."""

    @abstractmethod
    def copy_to_location(self, location: Location) -> File:
        """Copy to a same-named file in ``location`` and return it."""

    @abstractmethod
    def move_to_file(self, target: File) -> None:
        """Copy to ``target`` and delete this file."""

    @abstractmethod
    def move_to_location(self, location: Location) -> File:
        """Move to a same-named file in ``location`` and return it."""

    @abstractmethod
    def delete(self, *, all_versions: bool = False) -> None:
        """Discard the session and remove the object (optionally every version)."""

    @abstractmethod
    def touch(self) -> None:
        """Create an empty object or bump the modification time of an existing one."""
