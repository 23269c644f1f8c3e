"""In-process object store backend.

Objects live in a per-container dictionary of version histories, so the store
supports the same versioned delete and listing behaviour as S3 and GCS. It
backs the ``mem`` scheme and doubles as the reference client in tests.
"""

from __future__ import annotations

import io
import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from .interfaces import NotFoundError
from .object_filesystem import ObjectFileSystem
from .remote import (
    ListPage,
    ObjectAttributes,
    ObjectEntry,
    ObjectVersion,
    PipeReader,
    PipeUpload,
)
from .utils import read_all

DEFAULT_PAGE_SIZE = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Version:
    version_id: str
    data: bytes = b""
    last_modified: datetime = field(default_factory=_utcnow)
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    delete_marker: bool = False


class InMemoryObjectStore:
    """Thread-safe, optionally versioned object store held in memory."""

    def __init__(
        self,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._containers: dict[str, dict[str, list[_Version]]] = {}
        self._versioning: dict[str, bool] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._page_size = page_size
        self._clock = clock

    def create_container(self, container: str, *, versioning: bool = False) -> None:
        with self._lock:
            self._containers.setdefault(container, {})
            self._versioning[container] = versioning

    def _objects(self, container: str) -> dict[str, list[_Version]]:
        try:
            return self._containers[container]
        except KeyError:
            raise NotFoundError(f"/{container}") from None

    def _live(self, container: str, key: str) -> _Version:
        history = self._objects(container).get(key)
        if not history or history[-1].delete_marker:
            raise NotFoundError(f"/{container}/{key}")
        return history[-1]

    def _put(
        self,
        container: str,
        key: str,
        data: bytes,
        content_type: str | None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            objects = self._containers.setdefault(container, {})
            version = _Version(
                version_id=str(next(self._ids)),
                data=data,
                last_modified=self._clock(),
                content_type=content_type,
                metadata=dict(metadata or {}),
            )
            if self._versioning.get(container, False):
                objects.setdefault(key, []).append(version)
            else:
                objects[key] = [version]

    def head(self, container: str, key: str) -> ObjectAttributes:
        with self._lock:
            version = self._live(container, key)
            return ObjectAttributes(
                size=len(version.data),
                last_modified=version.last_modified,
                content_type=version.content_type,
                metadata=dict(version.metadata),
            )

    def range_read(self, container: str, key: str, start: int) -> io.BytesIO:
        with self._lock:
            return io.BytesIO(self._live(container, key).data[start:])

    def stream_write(
        self,
        container: str,
        key: str,
        content_type: str | None = None,
    ) -> PipeUpload:
        def consume(reader: PipeReader) -> None:
            self._put(container, key, read_all(reader), content_type)

        return PipeUpload(consume, name=f"mem://{container}/{key}")

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        content_type: str | None = None,
    ) -> None:
        with self._lock:
            source = self._live(source_container, source_key)
        self._put(
            dest_container,
            dest_key,
            source.data,
            content_type or source.content_type,
            source.metadata,
        )

    def remove(
        self,
        container: str,
        key: str,
        version_id: str | None = None,
    ) -> None:
        with self._lock:
            objects = self._objects(container)
            history = objects.get(key)
            if not history:
                raise NotFoundError(f"/{container}/{key}")
            if version_id is not None:
                remaining = [v for v in history if v.version_id != version_id]
                if len(remaining) == len(history):
                    raise NotFoundError(f"/{container}/{key}?version={version_id}")
            elif self._versioning.get(container, False):
                if history[-1].delete_marker:
                    raise NotFoundError(f"/{container}/{key}")
                marker = _Version(
                    version_id=str(next(self._ids)),
                    last_modified=self._clock(),
                    delete_marker=True,
                )
                remaining = [*history, marker]
            else:
                remaining = []
            if remaining:
                objects[key] = remaining
            else:
                del objects[key]

    def list_versions(self, container: str, prefix: str) -> list[ObjectVersion]:
        with self._lock:
            objects = self._objects(container)
            return [
                ObjectVersion(key=key, version_id=version.version_id)
                for key in sorted(objects)
                if key.startswith(prefix)
                for version in objects[key]
            ]

    def list_objects(
        self,
        container: str,
        prefix: str,
        delimiter: str,
        token: str | None = None,
    ) -> ListPage:
        with self._lock:
            objects = self._objects(container)
            keys = [
                key
                for key in sorted(objects)
                if key.startswith(prefix)
                and not objects[key][-1].delete_marker
                and not (delimiter and delimiter in key[len(prefix) :])
            ]
            start = int(token) if token else 0
            end = start + self._page_size
            entries = [
                ObjectEntry(key=key, size=len(objects[key][-1].data))
                for key in keys[start:end]
            ]
        truncated = end < len(keys)
        return ListPage(
            entries=entries,
            next_token=str(end) if truncated else None,
            is_truncated=truncated,
        )

    def container_exists(self, container: str) -> bool:
        with self._lock:
            return container in self._containers

    def update_metadata(
        self,
        container: str,
        key: str,
        metadata: dict[str, str],
    ) -> None:
        with self._lock:
            version = self._live(container, key)
            version.metadata = dict(metadata)
            version.last_modified = self._clock()

    def versioning_enabled(self, container: str) -> bool:
        with self._lock:
            self._objects(container)
            return self._versioning.get(container, False)


class MemFileSystem(ObjectFileSystem):
    """FileSystem over an :class:`InMemoryObjectStore`."""

    scheme = "mem"
    name = "In-Memory Filesystem"

    def _build_client(self) -> InMemoryObjectStore:
        return InMemoryObjectStore()
