"""Tests for local precondition checks."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from f9_vfs import InconsistentWriteError, PreconditionFailedError, ValidationError
from f9_vfs.validation import (
    validate_buffer_size,
    validate_connection_info,
    validate_copy_seek_position,
    validate_mirrored_write,
    validate_volume,
)


@dataclass
class _Cursor:
    path: str
    position: int

    def tell(self) -> int:
        return self.position


def test_copy_seek_position_at_start() -> None:
    """A file at position 0 may be copied."""
    validate_copy_seek_position(_Cursor("/a.txt", 0))


def test_copy_seek_position_moved() -> None:
    """A moved cursor is a failed precondition naming the file."""
    with pytest.raises(PreconditionFailedError) as excinfo:
        validate_copy_seek_position(_Cursor("/a.txt", 3))
    assert excinfo.value.path == "/a.txt"


def test_mirrored_write_counts() -> None:
    """Equal counts pass, different counts raise with both values."""
    validate_mirrored_write("/a.txt", written=4, mirrored=4)
    with pytest.raises(InconsistentWriteError) as excinfo:
        validate_mirrored_write("/a.txt", written=4, mirrored=2)
    assert (excinfo.value.written, excinfo.value.mirrored) == (4, 2)


def test_connection_info_must_be_mapping() -> None:
    """Only mappings are accepted as connection info."""
    info = {"region": "eu-west-1"}
    assert validate_connection_info(info) is info
    with pytest.raises(TypeError):
        validate_connection_info([("region", "eu-west-1")])


def test_buffer_size() -> None:
    """Zero is allowed, negatives are not."""
    assert validate_buffer_size(0) == 0
    assert validate_buffer_size(4096) == 4096
    with pytest.raises(ValueError, match="file_buffer_size"):
        validate_buffer_size(-1)


@pytest.mark.parametrize("volume", ["", "   "])
def test_volume_required(volume: str) -> None:
    """Empty or blank volumes are rejected."""
    with pytest.raises(ValidationError):
        validate_volume(volume, "/a.txt")
