"""Raw object-store client boundary and the background upload stream.

Every backend adapts its SDK to :class:`ObjectStoreClient`. The File and
Location state machines only ever talk to this protocol, which keeps them
independent of boto3, google-cloud-storage or the local disk.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, Callable, Protocol

from .interfaces import RemoteOperationError

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

PIPE_DEPTH = 8
_PUT_POLL_SECONDS = 0.1
_EOF = None


@dataclass(frozen=True)
class ObjectAttributes:
    """Result of a HEAD-equivalent call."""

    size: int
    last_modified: datetime
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectEntry:
    """One key returned by a listing call."""

    key: str
    size: int = 0


@dataclass(frozen=True)
class ObjectVersion:
    """One historical version of a key."""

    key: str
    version_id: str


@dataclass(frozen=True)
class ListPage:
    """One page of a paginated listing."""

    entries: list[ObjectEntry]
    next_token: str | None = None
    is_truncated: bool = False


class UploadStream(Protocol):
    """An in-flight streaming upload.

    ``close`` commits and blocks until the backend has finished; ``cancel``
    abandons the upload so that no object is written.
    """

    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...

    def cancel(self) -> None: ...


class ObjectStoreClient(Protocol):
    """Operations the core consumes from a backend.

    Implementations raise :class:`~f9_vfs.interfaces.NotFoundError` for a
    missing object or container and
    :class:`~f9_vfs.interfaces.RemoteOperationError` for anything else.
    """

    def head(self, container: str, key: str) -> ObjectAttributes: ...

    def range_read(self, container: str, key: str, start: int) -> BinaryIO: ...

    def stream_write(
        self,
        container: str,
        key: str,
        content_type: str | None = None,
    ) -> UploadStream: ...

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        content_type: str | None = None,
    ) -> None: ...

    def remove(
        self,
        container: str,
        key: str,
        version_id: str | None = None,
    ) -> None: ...

    def list_versions(self, container: str, prefix: str) -> list[ObjectVersion]: ...

    def list_objects(
        self,
        container: str,
        prefix: str,
        delimiter: str,
        token: str | None = None,
    ) -> ListPage: ...

    def container_exists(self, container: str) -> bool: ...

    def update_metadata(
        self,
        container: str,
        key: str,
        metadata: dict[str, str],
    ) -> None: ...

    def versioning_enabled(self, container: str) -> bool: ...


class UploadCancelledError(RemoteOperationError):
    """Raised inside an upload thread when its stream is cancelled."""


class PipeReader:
    """Read end of an upload pipe, handed to an SDK as a non-seekable file."""

    def __init__(self, depth: int = PIPE_DEPTH) -> None:
        self._chunks: queue.Queue[bytes | None] = queue.Queue(maxsize=depth)
        self._pending = bytearray()
        self._position = 0
        self._eof = False
        self._cancelled = threading.Event()

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def tell(self) -> int:
        return self._position

    def close(self) -> None:
        """Nothing to release; the writer owns the pipe."""

    def cancel(self) -> None:
        self._cancelled.set()
        try:
            self._chunks.put_nowait(_EOF)
        except queue.Full:
            pass

    def put(self, chunk: bytes | None, *, alive: Callable[[], bool]) -> None:
        """Feed a chunk (or EOF) while the consumer is still running."""
        while alive():
            try:
                self._chunks.put(chunk, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def _fill(self) -> None:
        chunk = self._chunks.get()
        if self._cancelled.is_set():
            msg = "Upload cancelled"
            raise UploadCancelledError(msg)
        if chunk is _EOF:
            self._eof = True
        else:
            self._pending.extend(chunk)

    def read(self, size: int = -1) -> bytes:
        while not self._eof and (size < 0 or len(self._pending) < size):
            self._fill()
        if size < 0:
            data = bytes(self._pending)
            self._pending.clear()
        else:
            data = bytes(self._pending[:size])
            del self._pending[:size]
        self._position += len(data)
        return data


class PipeUpload:
    """Upload stream that feeds a background thread through a bounded pipe.

    ``target`` receives the :class:`PipeReader` and performs the blocking SDK
    upload. Its outcome lands in a :class:`~concurrent.futures.Future`, which
    :meth:`close` waits on.
    """

    def __init__(self, target: Callable[[PipeReader], None], *, name: str) -> None:
        self._reader = PipeReader()
        self._future: Future[None] = Future()
        self._closed = False
        self._name = name
        self._thread = threading.Thread(
            target=self._run,
            args=(target,),
            name=f"upload:{name}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Started background upload for %s", name)

    def _run(self, target: Callable[[PipeReader], None]) -> None:
        if not self._future.set_running_or_notify_cancel():
            return
        try:
            target(self._reader)
        except Exception as exc:  # noqa: BLE001
            self._future.set_exception(exc)
        else:
            self._future.set_result(None)

    def _alive(self) -> bool:
        return not self._future.done()

    def _raise_if_failed(self) -> None:
        if self._future.done():
            self._future.result()

    def write(self, data: bytes) -> int:
        if self._closed:
            msg = "Upload stream already closed"
            raise RemoteOperationError(msg, path=self._name)
        self._raise_if_failed()
        if data:
            self._reader.put(bytes(data), alive=self._alive)
            self._raise_if_failed()
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.put(_EOF, alive=self._alive)
        self._future.result()
        logger.debug("Background upload for %s completed", self._name)

    def cancel(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.cancel()
        self._thread.join()
        error = self._future.exception()
        if error is not None and not isinstance(error, UploadCancelledError):
            logger.debug("Cancelled upload for %s ended with %s", self._name, error)
        else:
            logger.debug("Cancelled upload for %s", self._name)
