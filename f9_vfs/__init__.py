"""Virtual filesystem abstraction over object stores.

One File/Location/FileSystem API covers Amazon S3, Google Cloud Storage, an
in-process store and the local disk. Files behave like ordinary random-access
files (read, write, seek, tell, close) even though object stores only support
whole-object uploads and ranged downloads.

Core Components:
    - FileSystem: Creates files and locations for one backend configuration
    - Location: A directory-like prefix inside a bucket
    - File: One object with a read/write/seek session committed on close
    - S3FileSystem, GCSFileSystem, MemFileSystem, OSFileSystem: Backends

Quick Start:

    >>> from f9_vfs import MemFileSystem
    >>> fs = MemFileSystem()
    >>> with fs.new_file("scratch", "/notes/today.txt") as f:
    ...     f.write(b"Hello, world!")
    13
    >>> fs.new_location("scratch", "/notes/").list()
    ['today.txt']

    >>> from f9_vfs import new_file, new_location
    >>> new_file("s3://reports/2024.csv").copy_to_location(
    ...     new_location("gs://archive/reports/"),
    ... )

Exception Handling:

    >>> from f9_vfs import NotFoundError
    >>> try:
    ...     fs.new_file("scratch", "/missing.txt").size()
    ... except NotFoundError:
    ...     print("File not found")
    File not found

"""

from .compat import (
    CompatibleFile,
    translate_backend_exception,
    translate_exceptions,
    translate_method,
)
from .factory import (
    BackendFactory,
    new_file,
    new_location,
    register_backend_factory,
    resolve,
)
from .gcs_backend import GCSFileSystem, GCSObjectClient, GCSOptions
from .interfaces import (
    TOUCH_COPY_MIN_BUFFER_SIZE,
    File,
    FileSystem,
    InconsistentWriteError,
    Location,
    NotFoundError,
    PartialMoveError,
    PreconditionFailedError,
    RemoteOperationError,
    ValidationError,
    VFSError,
)
from .local import LocalDiskClient, LocalOptions, OSFileSystem, OSLocation
from .mem_backend import InMemoryObjectStore, MemFileSystem
from .object_file import ObjectFile
from .object_filesystem import ObjectFileSystem
from .object_location import ObjectLocation
from .options import ObjectStoreOptions
from .registry import BackendRegistry
from .remote import (
    ListPage,
    ObjectAttributes,
    ObjectEntry,
    ObjectStoreClient,
    ObjectVersion,
    UploadCancelledError,
)
from .retry import ExponentialBackoff, FixedRetry, RetryPolicy, no_retry
from .s3_backend import S3FileSystem, S3ObjectClient, S3Options
from .utils import touch_copy_buffered, wait_until_file_exists

__all__ = [
    "TOUCH_COPY_MIN_BUFFER_SIZE",
    "BackendFactory",
    "BackendRegistry",
    "CompatibleFile",
    "ExponentialBackoff",
    "File",
    "FileSystem",
    "FixedRetry",
    "GCSFileSystem",
    "GCSObjectClient",
    "GCSOptions",
    "InMemoryObjectStore",
    "InconsistentWriteError",
    "ListPage",
    "LocalDiskClient",
    "LocalOptions",
    "Location",
    "MemFileSystem",
    "NotFoundError",
    "OSFileSystem",
    "OSLocation",
    "ObjectAttributes",
    "ObjectEntry",
    "ObjectFile",
    "ObjectFileSystem",
    "ObjectLocation",
    "ObjectStoreClient",
    "ObjectStoreOptions",
    "ObjectVersion",
    "PartialMoveError",
    "PreconditionFailedError",
    "RemoteOperationError",
    "RetryPolicy",
    "S3FileSystem",
    "S3ObjectClient",
    "S3Options",
    "UploadCancelledError",
    "VFSError",
    "ValidationError",
    "new_file",
    "new_location",
    "no_retry",
    "register_backend_factory",
    "resolve",
    "touch_copy_buffered",
    "translate_backend_exception",
    "translate_exceptions",
    "translate_method",
    "wait_until_file_exists",
]
