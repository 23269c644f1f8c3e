"""FileSystem component shared by every object-store backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, TypeVar

from .interfaces import FileSystem
from .object_file import ObjectFile
from .object_location import ObjectLocation
from .options import ObjectStoreOptions
from .path_utils import validate_absolute_file_path, validate_absolute_location_path

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping

    from .remote import ObjectStoreClient

T = TypeVar("T")
FileSystemT = TypeVar("FileSystemT", bound="ObjectFileSystem")

logger = logging.getLogger(__name__)


class ObjectFileSystem(FileSystem):
    """Holds backend options and a lazily constructed client.

    Subclasses set ``scheme``, ``name`` and ``options_class`` and implement
    :meth:`_build_client`. Changing options drops a built client so that the
    next use rebuilds it; an injected client is kept.
    """

    options_class: ClassVar[type[ObjectStoreOptions]] = ObjectStoreOptions
    file_class: ClassVar[type[ObjectFile]] = ObjectFile
    location_class: ClassVar[type[ObjectLocation]] = ObjectLocation
    requires_volume: ClassVar[bool] = True

    def __init__(
        self,
        options: ObjectStoreOptions | None = None,
        *,
        client: ObjectStoreClient | None = None,
    ) -> None:
        self._options = options if options is not None else self.options_class()
        self._injected_client = client
        self._built_client: ObjectStoreClient | None = None

    @classmethod
    def from_connection_info(
        cls: type[FileSystemT],
        connection_info: Mapping[str, Any],
        *,
        client: ObjectStoreClient | None = None,
    ) -> FileSystemT:
        """Create a filesystem from a mapping of option values."""
        return cls(cls.options_class.from_mapping(connection_info), client=client)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(scheme={self.scheme!r})"

    @property
    def options(self) -> ObjectStoreOptions:
        return self._options

    @property
    def client(self) -> ObjectStoreClient:
        """Return the backend client, building it on first use."""
        if self._injected_client is not None:
            return self._injected_client
        if self._built_client is None:
            self._built_client = self._build_client()
            logger.debug("Built %s client", self.scheme)
        return self._built_client

    def _build_client(self) -> ObjectStoreClient:
        raise NotImplementedError

    def with_options(self: FileSystemT, **changes: Any) -> FileSystemT:
        """Apply option changes and invalidate the cached client."""
        self._options = self._options.replace(**changes)
        self._built_client = None
        return self

    def with_client(self: FileSystemT, client: ObjectStoreClient) -> FileSystemT:
        """Use a pre-built client instead of constructing one."""
        self._injected_client = client
        self._built_client = None
        return self

    def credential_scope(self) -> Hashable:
        """Return a value equal across filesystems that may copy natively."""
        return id(self.client)

    def _injected_client_id(self) -> int | None:
        """Identify an injected client; distinct clients never copy natively."""
        if self._injected_client is None:
            return None
        return id(self._injected_client)

    def retry(self, operation: Callable[[], T]) -> T:
        return self._options.retry(operation)

    def new_file(
        self,
        volume: str,
        absolute_path: str,
        *,
        content_type: str | None = None,
    ) -> ObjectFile:
        validate_absolute_file_path(absolute_path)
        return self.file_class(self, volume, absolute_path, content_type=content_type)

    def new_location(self, volume: str, absolute_path: str) -> ObjectLocation:
        validate_absolute_location_path(absolute_path)
        return self.location_class(self, volume, absolute_path)
