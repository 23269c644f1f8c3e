"""Shared utility functions for File implementations.

Key utilities:
- Data type coercion (bytes, str, BinaryIO)
- Seek arithmetic shared by every backend
- The mirrored writer used by the dual-path write
- Buffered copy that always produces a target object
- Touch and eventual-consistency helpers

Example usage:
    >>> from f9_vfs.utils import seek_to
    >>> seek_to(length=12, position=4, offset=-2, whence=os.SEEK_END)
    10
"""

from __future__ import annotations

import io
import logging
import os
import time
from typing import TYPE_CHECKING, BinaryIO, Callable, Protocol

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from .interfaces import (
    TOUCH_COPY_MIN_BUFFER_SIZE,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from tenacity import RetryCallState

    from .interfaces import File

logger = logging.getLogger(__name__)


class Writable(Protocol):
    def write(self, data: bytes) -> int: ...


class Readable(Protocol):
    def read(self, size: int = -1) -> bytes: ...


def coerce_to_bytes(data: bytes | bytearray | memoryview | str | BinaryIO) -> bytes:
    """Coerce supported input types to raw bytes.

    Handles bytes-like objects, strings (UTF-8 encoded), and file-like objects.

    Raises:
        TypeError: If data type is not supported.

    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")

    if hasattr(data, "read"):
        result = data.read()
        if isinstance(result, str):
            return result.encode("utf-8")
        if isinstance(result, (bytes, bytearray)):
            return bytes(result)
        message = f"Unsupported stream payload type: {type(result).__name__}"
        raise TypeError(message)

    message = f"Unsupported data type: {type(data).__name__}"
    raise TypeError(message)


def seek_to(length: int, position: int, offset: int, whence: int) -> int:
    """Return the absolute position for a seek request.

    Args:
        length: Current logical length of the file
        position: Current cursor position
        offset: Requested offset
        whence: ``os.SEEK_SET``, ``os.SEEK_CUR`` or ``os.SEEK_END``

    Raises:
        ValidationError: If ``whence`` is unknown or the result is negative.

    """
    if whence == os.SEEK_SET:
        target = offset
    elif whence == os.SEEK_CUR:
        target = position + offset
    elif whence == os.SEEK_END:
        target = length + offset
    else:
        raise ValidationError.invalid_whence(whence)
    if target < 0:
        raise ValidationError.negative_seek_offset(target)
    return target


class MirroredWriter:
    """Write every chunk to a primary sink and, while attached, a secondary one.

    ``on_mismatch`` is called with both byte counts when they differ; it is
    expected to raise.
    """

    def __init__(
        self,
        primary: Writable,
        secondary: Writable | None,
        on_mismatch: Callable[[int, int], None],
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self._on_mismatch = on_mismatch

    @property
    def mirroring(self) -> bool:
        return self.secondary is not None

    def detach(self) -> Writable | None:
        """Stop mirroring and return the secondary sink."""
        secondary, self.secondary = self.secondary, None
        return secondary

    def write(self, data: bytes) -> int:
        written = self.primary.write(data)
        if self.secondary is not None:
            mirrored = self.secondary.write(data)
            if mirrored != written:
                self._on_mismatch(written, mirrored)
        return written


def touch_copy_buffered(
    writer: Writable,
    reader: Readable,
    buffer_size: int = TOUCH_COPY_MIN_BUFFER_SIZE,
) -> int:
    """Copy ``reader`` into ``writer`` and guarantee at least one write call.

    An empty source still produces an empty target object, since the target
    is only created when written to. A non-positive ``buffer_size`` falls
    back to ``TOUCH_COPY_MIN_BUFFER_SIZE``.

    Returns:
        Total number of bytes copied.

    """
    if buffer_size <= 0:
        buffer_size = TOUCH_COPY_MIN_BUFFER_SIZE
    total = 0
    while True:
        chunk = reader.read(buffer_size)
        if not chunk:
            break
        writer.write(chunk)
        total += len(chunk)
    if total == 0:
        writer.write(b"")
    return total


def read_all(reader: Readable, chunk_size: int = TOUCH_COPY_MIN_BUFFER_SIZE) -> bytes:
    """Read a stream to its end in ``chunk_size`` pieces."""
    accumulated = io.BytesIO()
    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        accumulated.write(chunk)
    return accumulated.getvalue()


def wait_until_file_exists(
    file: File,
    retries: int = 5,
    delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll ``file.exists()`` until it reports true.

    Some object stores are eventually consistent, so a just-closed object may
    not be visible yet.

    Raises:
        NotFoundError: If the object is still missing after ``retries`` polls.

    """

    def log_poll(retry_state: RetryCallState) -> None:
        logger.debug(
            "%s not visible yet (poll %d of %d)",
            file,
            retry_state.attempt_number,
            retries,
        )

    polling = Retrying(
        stop=stop_after_attempt(max(retries, 1)),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda visible: not visible),
        before_sleep=log_poll,
        sleep=sleep,
        retry_error_callback=lambda retry_state: False,
    )
    if retries < 1 or not polling(file.exists):
        raise NotFoundError(file.path)


def update_last_modified_by_moving(file: File) -> None:
    """Force a new modification time by moving the object away and back.

    Used by Touch where metadata updates do not bump the timestamp, such as
    on versioned buckets.
    """
    temp = file.location.new_file(f"{file.name}.{time.time_ns()}")
    file.copy_to_file(temp)
    file.delete()
    temp.move_to_file(file)
