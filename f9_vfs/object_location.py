"""Location (prefix) component shared by every object-store backend."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import TYPE_CHECKING

from .interfaces import Location, NotFoundError
from .path_utils import (
    clean_prefix,
    normalize_location_path,
    remove_leading_slash,
    resolve_file_path,
    resolve_location_path,
    validate_prefix,
)
from .validation import validate_volume

if TYPE_CHECKING:
    from .interfaces import File
    from .object_filesystem import ObjectFileSystem

logger = logging.getLogger(__name__)

DELIMITER = "/"


class ObjectLocation(Location):
    """A normalised prefix inside a bucket or other container."""

    def __init__(self, filesystem: ObjectFileSystem, volume: str, path: str) -> None:
        if filesystem.requires_volume:
            validate_volume(volume, path)
        self._filesystem = filesystem
        self._volume = volume
        self._path = normalize_location_path(path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectLocation):
            return NotImplemented
        return (
            self._filesystem.scheme == other.filesystem.scheme
            and self._volume == other.volume
            and self._path == other.path
        )

    def __hash__(self) -> int:
        return hash((self._filesystem.scheme, self._volume, self._path))

    @property
    def volume(self) -> str:
        return self._volume

    @property
    def path(self) -> str:
        return self._path

    @property
    def prefix(self) -> str:
        """Return the key prefix: no leading slash, ``""`` at the root."""
        return clean_prefix(self._path)

    @property
    def filesystem(self) -> ObjectFileSystem:
        return self._filesystem

    def list(self) -> list[str]:
        prefix = self.prefix
        return self._list_basenames(prefix, prefix.rstrip("/"))

    def list_by_prefix(self, prefix: str) -> list[str]:
        """Return basenames under the location that start with ``prefix``.

        ``"dir/"`` lists the files directly inside ``dir``; ``"dir/rep"``
        lists the files in ``dir`` whose names start with ``rep``.
        """
        validate_prefix(prefix)
        if posixpath.normpath(prefix) == ".":
            return self.list()
        joined = posixpath.normpath(posixpath.join(self._path, prefix))
        if prefix.endswith("/") and joined != "/":
            joined += "/"
        search = remove_leading_slash(joined)
        if search.endswith("/"):
            directory = search.rstrip("/")
        else:
            directory = posixpath.dirname(search)
        return self._list_basenames(search, directory)

    def list_by_regex(self, pattern: str | re.Pattern[str]) -> list[str]:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        return [name for name in self.list() if regex.search(name)]

    def _list_basenames(self, search: str, directory: str) -> list[str]:
        client = self._filesystem.client
        names: list[str] = []
        token: str | None = None
        pages = 0
        while True:
            page = self._filesystem.retry(
                lambda: client.list_objects(self._volume, search, DELIMITER, token),
            )
            pages += 1
            for entry in page.entries:
                key = entry.key
                if key.endswith("/") or key == directory:
                    continue
                names.append(posixpath.basename(key))
            if not page.is_truncated or not page.next_token:
                break
            token = page.next_token
        logger.debug(
            "Listed %d objects under %s://%s/%s in %d page(s)",
            len(names),
            self._filesystem.scheme,
            self._volume,
            search,
            pages,
        )
        return names

    def exists(self) -> bool:
        client = self._filesystem.client
        try:
            return self._filesystem.retry(lambda: client.container_exists(self._volume))
        except NotFoundError:
            return False

    def new_location(self, relative_path: str) -> Location:
        resolved = resolve_location_path(self._path, relative_path)
        return self._filesystem.new_location(self._volume, resolved)

    def change_dir(self, relative_path: str) -> None:
        self._path = resolve_location_path(self._path, relative_path)

    def new_file(self, relative_path: str) -> File:
        resolved = resolve_file_path(self._path, relative_path)
        return self._filesystem.new_file(self._volume, resolved)

    def delete_file(self, name: str) -> None:
        self.new_file(name).delete()
