"""Validation helpers for File operations.

The checks here are purely local: they run before any remote call and their
errors are never retried.

Example:
    >>> validate_copy_seek_position(source)  # Raises if source was read from
    >>> validate_mirrored_write("/key.txt", written=4, mirrored=3)
    Traceback (most recent call last):
    ...
    InconsistentWriteError: Write diverged: ...

"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from .interfaces import (
    InconsistentWriteError,
    PreconditionFailedError,
    ValidationError,
)


class Cursor(Protocol):
    """Anything exposing a path and a cursor position."""

    @property
    def path(self) -> str:
        """Absolute key of the object."""
        ...

    def tell(self) -> int:
        """Current cursor position."""
        ...


def validate_copy_seek_position(file: Cursor) -> None:
    """Ensure a file is at position 0 before it is copied.

    Args:
        file: Source file of the copy

    Raises:
        PreconditionFailedError: If the cursor has moved away from 0.

    """
    if file.tell() != 0:
        raise PreconditionFailedError.copy_cursor_not_at_start(file.path)


def validate_mirrored_write(path: str, *, written: int, mirrored: int) -> None:
    """Ensure the spill file and the remote stream accepted the same bytes.

    Raises:
        InconsistentWriteError: If the two counts differ.

    """
    if written != mirrored:
        raise InconsistentWriteError(path, written=written, mirrored=mirrored)


def validate_connection_info(connection_info: Any) -> Mapping[str, Any]:
    """Return ``connection_info`` if it is a mapping.

    Raises:
        TypeError: If it is not a mapping.

    """
    if not isinstance(connection_info, Mapping):
        message = "connection_info must be a mapping"
        raise TypeError(message)
    return connection_info


def validate_buffer_size(value: int) -> int:
    """Return a buffer size, rejecting negatives.

    Zero is allowed and means "use the minimum".

    Raises:
        ValueError: If ``value`` is negative.

    """
    if value < 0:
        message = f"file_buffer_size must not be negative, got {value}"
        raise ValueError(message)
    return value


def validate_volume(volume: str, path: str) -> None:
    """Ensure a container identifier was supplied.

    Raises:
        ValidationError: If ``volume`` is empty or whitespace.

    """
    if not volume or volume.strip() == "":
        raise ValidationError.empty_volume(path)
