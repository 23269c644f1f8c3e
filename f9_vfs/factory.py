"""URI dispatch for files and locations.

A URI names both the backend and the object: ``scheme://volume/path``. A path
ending in ``/`` is a Location, anything else a File.

Supported URI Schemes:
    - s3://bucket/key - S3FileSystem
    - gs://bucket/key - GCSFileSystem
    - mem://volume/key - MemFileSystem
    - file:///abs/path - OSFileSystem

Query parameters configure the filesystem, for example
``s3://bucket/key.csv?region=eu-west-1&retries=3``. URIs without parameters
share one filesystem per scheme, held in the factory's registry.

Example:
    >>> from f9_vfs.factory import new_file, new_location
    >>> report = new_file("s3://reports/2024/summary.csv")
    >>> archive = new_location("gs://archive/2024/")
    >>> report.copy_to_location(archive)

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import parse_qs, unquote, urlparse

from .registry import BackendRegistry

if TYPE_CHECKING:
    from typing import TypeAlias

    from .interfaces import File, FileSystem, Location

    FileSystemFactoryFunc: TypeAlias = Callable[[dict[str, Any]], FileSystem]

logger = logging.getLogger(__name__)


class BackendFactory:
    """Creates files and locations from URI strings."""

    def __init__(self, registry: BackendRegistry | None = None) -> None:
        """Initialize the factory with built-in URI scheme handlers."""
        self.registry = registry if registry is not None else BackendRegistry()
        self._factories: dict[str, FileSystemFactoryFunc] = {
            "s3": self._create_s3_filesystem,
            "gs": self._create_gcs_filesystem,
            "mem": self._create_mem_filesystem,
            "file": self._create_os_filesystem,
        }

    def parse_uri(self, uri: str) -> tuple[str, str, str, dict[str, str]]:
        """Parse a URI into scheme, volume, path and query parameters.

        Args:
            uri: URI string to parse

        Returns:
            Tuple of (scheme, volume, path, params). ``path`` always begins
            with a slash.

        Raises:
            ValueError: If the scheme, or the volume of a non-file URI, is
                missing.

        """
        parsed = urlparse(uri)

        if not parsed.scheme:
            msg = f"Invalid URI: missing scheme in '{uri}'"
            raise ValueError(msg)

        volume = parsed.netloc
        if not volume and parsed.scheme != "file":
            msg = f"Invalid URI: missing volume in '{uri}'"
            raise ValueError(msg)

        path = unquote(parsed.path) or "/"
        if not path.startswith("/"):
            path = "/" + path

        params: dict[str, str] = {}
        if parsed.query:
            params = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        return parsed.scheme, volume, path, params

    def filesystem(self, scheme: str, params: dict[str, Any] | None = None) -> FileSystem:
        """Return the filesystem for a scheme.

        Without parameters the registered instance is reused (and created on
        first use); parameters always produce a fresh, unregistered instance.

        Raises:
            ValueError: If the scheme is unsupported.

        """
        if not params and self.registry.exists(scheme):
            return self.registry.get(scheme)

        if scheme not in self._factories:
            supported = ", ".join(sorted(self._factories.keys()))
            msg = (
                f"Unsupported URI scheme: '{scheme}'. "
                f"Supported schemes: {supported}"
            )
            raise ValueError(msg)

        filesystem = self._factories[scheme](dict(params or {}))
        if not params:
            self.registry.register(scheme, filesystem)
            logger.debug("Registered default %s filesystem", scheme)
        return filesystem

    def resolve(self, uri: str) -> File | Location:
        """Return a File, or a Location when the URI path ends with ``/``."""
        scheme, volume, path, params = self.parse_uri(uri)
        filesystem = self.filesystem(scheme, params)
        if path.endswith("/"):
            return filesystem.new_location(volume, path)
        return filesystem.new_file(volume, path)

    def new_file(self, uri: str) -> File:
        """Return the File named by ``uri``.

        Raises:
            ValueError: If the URI names a location.

        """
        scheme, volume, path, params = self.parse_uri(uri)
        if path.endswith("/"):
            msg = f"Invalid URI: '{uri}' names a location, not a file"
            raise ValueError(msg)
        return self.filesystem(scheme, params).new_file(volume, path)

    def new_location(self, uri: str) -> Location:
        """Return the Location named by ``uri``.

        Raises:
            ValueError: If the URI path does not end with ``/``.

        """
        scheme, volume, path, params = self.parse_uri(uri)
        if not path.endswith("/"):
            msg = f"Invalid URI: '{uri}' names a file, not a location"
            raise ValueError(msg)
        return self.filesystem(scheme, params).new_location(volume, path)

    def register(
        self,
        scheme: str,
        factory_func: FileSystemFactoryFunc,
    ) -> None:
        """Register a custom filesystem factory for a URI scheme.

        Args:
            scheme: URI scheme to register (e.g., "sftp")
            factory_func: Callable that takes the query parameters and
                returns a FileSystem

        """
        if not callable(factory_func):
            msg = "factory_func must be callable"
            raise TypeError(msg)
        self._factories[scheme] = factory_func
        if self.registry.exists(scheme):
            self.registry.unregister(scheme)

    def _create_s3_filesystem(self, params: dict[str, Any]) -> FileSystem:
        from .s3_backend import S3FileSystem

        return S3FileSystem.from_connection_info(params)

    def _create_gcs_filesystem(self, params: dict[str, Any]) -> FileSystem:
        from .gcs_backend import GCSFileSystem

        return GCSFileSystem.from_connection_info(params)

    def _create_mem_filesystem(self, params: dict[str, Any]) -> FileSystem:
        from .mem_backend import MemFileSystem

        return MemFileSystem.from_connection_info(params)

    def _create_os_filesystem(self, params: dict[str, Any]) -> FileSystem:
        from .local import OSFileSystem

        return OSFileSystem.from_connection_info(params)


# Global default factory instance
_default_factory = BackendFactory()


def resolve(uri: str) -> File | Location:
    """Resolve a URI with the default factory.

    Example:
        >>> from f9_vfs.factory import resolve
        >>> resolve("mem://scratch/notes/")
        ObjectLocation('mem://scratch/notes/')

    """
    return _default_factory.resolve(uri)


def new_file(uri: str) -> File:
    """Return the File named by ``uri`` using the default factory."""
    return _default_factory.new_file(uri)


def new_location(uri: str) -> Location:
    """Return the Location named by ``uri`` using the default factory."""
    return _default_factory.new_location(uri)


def register_backend_factory(
    scheme: str,
    factory_func: FileSystemFactoryFunc,
) -> None:
    """Register a custom filesystem factory with the default factory.

    Example:
        >>> from f9_vfs.factory import register_backend_factory
        >>> from f9_vfs.mem_backend import MemFileSystem
        >>> register_backend_factory("scratch", lambda params: MemFileSystem())

    """
    _default_factory.register(scheme, factory_func)
