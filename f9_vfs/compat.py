"""Exception translation for code written against Python's file API.

Maps f9_vfs errors onto the builtin exceptions that ``open()``-style code
expects, so a File can be handed to libraries that know nothing about this
package.
"""

from __future__ import annotations

import functools
import io
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from .interfaces import (
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
    VFSError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .interfaces import File

T = TypeVar("T")


def translate_backend_exception(exc: VFSError) -> Exception:
    """Convert a VFSError to the closest builtin exception.

    Maps:
    - NotFoundError → FileNotFoundError
    - ValidationError → ValueError
    - PreconditionFailedError → io.UnsupportedOperation
    - any other VFSError → OSError

    Args:
        exc: The VFSError to translate.

    Returns:
        A builtin exception carrying the original message.

    """
    message = str(exc)

    if isinstance(exc, NotFoundError):
        return FileNotFoundError(message)

    if isinstance(exc, ValidationError):
        return ValueError(message)

    if isinstance(exc, PreconditionFailedError):
        return io.UnsupportedOperation(message)

    return OSError(message)


@contextmanager
def translate_exceptions() -> Iterator[None]:
    """Translate any VFSError raised inside the block.

    Example:
        ```python
        with translate_exceptions():
            fs.new_file("bucket", "/missing.txt").size()  # FileNotFoundError
        ```

    """
    try:
        yield
    except VFSError as exc:
        raise translate_backend_exception(exc) from exc


def translate_method(method: Callable[..., T]) -> Callable[..., T]:
    """Wrap a callable so that VFSErrors leave it as builtin exceptions."""

    @functools.wraps(method)
    def wrapper(*args: object, **kwargs: object) -> T:
        with translate_exceptions():
            return method(*args, **kwargs)

    return wrapper


class CompatibleFile:
    """File wrapper whose methods raise builtin exceptions.

    Attribute access is delegated to the wrapped File; callables come back
    wrapped with :func:`translate_method`. Supports the context manager
    protocol, closing (and so committing) the file on exit.

    Example:
        ```python
        from f9_vfs import CompatibleFile, new_file

        with CompatibleFile(new_file("s3://reports/summary.csv")) as f:
            try:
                f.seek(-1)
            except ValueError:
                print("bad offset")
        ```

    """

    def __init__(self, file: File) -> None:
        self._file = file

    @property
    def wrapped(self) -> File:
        """Return the underlying File."""
        return self._file

    def __getattr__(self, name: str) -> object:
        attr = getattr(self._file, name)
        if callable(attr):
            return translate_method(attr)
        return attr

    def __enter__(self) -> CompatibleFile:
        return self

    def __exit__(self, *exc_info: object) -> None:
        with translate_exceptions():
            self._file.close()

    def __repr__(self) -> str:
        return f"CompatibleFile({self._file!r})"
