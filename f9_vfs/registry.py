"""Registry of FileSystem instances keyed by URI scheme.

A registry is an explicit object: the URI factory owns one, and callers that
need isolated configuration can build their own.

Example:
    >>> from f9_vfs.registry import BackendRegistry
    >>> from f9_vfs.mem_backend import MemFileSystem
    >>> registry = BackendRegistry()
    >>> registry.register("mem", MemFileSystem())
    >>> registry.get("mem").new_file("bucket", "/hello.txt")

"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .interfaces import FileSystem


class BackendRegistry:
    """Maps URI schemes to configured FileSystem instances."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._backends: dict[str, FileSystem] = {}

    def register(
        self,
        scheme: str,
        filesystem: FileSystem,
        *,
        replace: bool = False,
    ) -> None:
        """Register a filesystem for a scheme.

        Args:
            scheme: URI scheme such as ``"s3"``
            filesystem: FileSystem serving that scheme
            replace: Overwrite an existing registration instead of failing

        Raises:
            ValueError: If the scheme is taken and ``replace`` is false.

        """
        if scheme in self._backends and not replace:
            msg = f"Backend for scheme '{scheme}' already registered"
            raise ValueError(msg)
        self._backends[scheme] = filesystem

    def unregister(self, scheme: str) -> None:
        """Remove the filesystem registered for a scheme.

        Raises:
            KeyError: If nothing is registered for the scheme.

        """
        if scheme not in self._backends:
            msg = f"Backend for scheme '{scheme}' not found"
            raise KeyError(msg)
        del self._backends[scheme]

    def get(self, scheme: str) -> FileSystem:
        """Return the filesystem registered for a scheme.

        Raises:
            KeyError: If nothing is registered for the scheme.

        """
        if scheme not in self._backends:
            msg = f"Backend for scheme '{scheme}' not found"
            raise KeyError(msg)
        return self._backends[scheme]

    def list(self) -> list[str]:
        """Return registered schemes in registration order."""
        return list(self._backends.keys())

    def exists(self, scheme: str) -> bool:
        """Return whether a filesystem is registered for the scheme."""
        return scheme in self._backends

    def clear(self) -> None:
        """Remove every registration."""
        self._backends.clear()
