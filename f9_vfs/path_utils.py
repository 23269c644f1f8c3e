"""Path validation and normalization utilities.

Object keys and location prefixes are always POSIX style, whatever the host
platform. These helpers keep the slash conventions consistent across backends:

- Absolute file paths begin with a slash and never end with one
- Absolute location paths begin and end with a slash
- Relative file paths neither begin nor end with a slash
- Relative location paths end with a slash but do not begin with one
"""

from __future__ import annotations

import posixpath

from .interfaces import ValidationError


def remove_trailing_slash(path: str) -> str:
    """Strip every trailing slash from ``path``."""
    return path.rstrip("/")


def remove_leading_slash(path: str) -> str:
    """Strip every leading slash from ``path``."""
    return path.lstrip("/")


def ensure_trailing_slash(path: str) -> str:
    """Return ``path`` with exactly one trailing slash appended if missing."""
    return path if path.endswith("/") else path + "/"


def ensure_leading_slash(path: str) -> str:
    """Return ``path`` with a leading slash prepended if missing."""
    return path if path.startswith("/") else "/" + path


def validate_absolute_file_path(path: str) -> None:
    """Validate that a file path is absolute.

    Args:
        path: Path to validate

    Raises:
        ValidationError: If the path lacks a leading slash or ends in one.

    """
    if not path.startswith("/") or path.endswith("/"):
        raise ValidationError.bad_absolute_file_path(path)


def validate_relative_file_path(path: str) -> None:
    """Validate that a file path is relative.

    Args:
        path: Path to validate

    Raises:
        ValidationError: If the path is empty, ``"."``, or carries a leading
            or trailing slash.

    """
    if path in ("", ".") or path.startswith("/") or path.endswith("/"):
        raise ValidationError.bad_relative_file_path(path)


def validate_absolute_location_path(path: str) -> None:
    """Validate that a location path begins and ends with a slash."""
    if not path.startswith("/") or not path.endswith("/"):
        raise ValidationError.bad_absolute_location_path(path)


def validate_relative_location_path(path: str) -> None:
    """Validate that a location path ends with a slash and does not begin with one."""
    if path.startswith("/") or not path.endswith("/"):
        raise ValidationError.bad_relative_location_path(path)


def validate_prefix(prefix: str) -> None:
    """Validate a listing prefix.

    Unlike a relative file path the prefix may be ``"."`` and may end with a
    slash, which scopes the listing to a subdirectory.

    Raises:
        ValidationError: If the prefix is empty or absolute.

    """
    if prefix == "" or prefix.startswith("/"):
        raise ValidationError.bad_prefix(prefix)


def detect_path_traversal_posix(path_parts: tuple[str, ...]) -> bool:
    """Detect path traversal attempts in path components.

    Args:
        path_parts: Tuple of path components (from PurePosixPath.parts)

    Returns:
        True if any component is ``".."``, False otherwise

    Example:

        >>> from pathlib import PurePosixPath
        >>> detect_path_traversal_posix(PurePosixPath("../etc/passwd").parts)
        True
        >>> detect_path_traversal_posix(PurePosixPath("some/key.txt").parts)
        False

    """
    return any(part == ".." for part in path_parts)


def normalize_windows_path(path_str: str) -> str:
    """Normalize Windows backslashes to forward slashes.

    Example:

        >>> normalize_windows_path("dir\\subdir\\file.txt")
        'dir/subdir/file.txt'

    """
    return path_str.replace("\\", "/")


def clean_prefix(prefix: str) -> str:
    """Return a key prefix with dot-segments resolved and no leading slash.

    The root prefix becomes the empty string, anything else keeps a single
    trailing slash.
    """
    cleaned = posixpath.normpath(ensure_leading_slash(prefix))
    cleaned = remove_leading_slash(cleaned)
    return "" if cleaned in ("", ".") else ensure_trailing_slash(cleaned)


def normalize_location_path(path: str) -> str:
    """Return an absolute location path with dot-segments resolved."""
    validate_absolute_location_path(path)
    return ensure_leading_slash(clean_prefix(path))


def resolve_location_path(base: str, relative_path: str) -> str:
    """Resolve a relative location path against an absolute location path.

    Args:
        base: Absolute location path (leading and trailing slash)
        relative_path: Relative location path (trailing slash only)

    Returns:
        Normalised absolute location path

    Raises:
        ValidationError: If either argument has the wrong slash form.

    """
    validate_relative_location_path(relative_path)
    return normalize_location_path(posixpath.join(base, relative_path))


def resolve_file_path(base: str, relative_path: str) -> str:
    """Resolve a relative file path against an absolute location path.

    Returns:
        Normalised absolute file path

    Raises:
        ValidationError: If the relative path is malformed or resolves to
            the root.

    """
    validate_relative_file_path(relative_path)
    resolved = posixpath.normpath(posixpath.join(ensure_leading_slash(base), relative_path))
    if resolved.endswith("/"):
        raise ValidationError.bad_relative_file_path(relative_path)
    return resolved


def key_from_path(path: str) -> str:
    """Convert an absolute object path into a bucket key."""
    return remove_leading_slash(path)


def file_uri(scheme: str, volume: str, path: str) -> str:
    """Build a file URI such as ``s3://bucket/some/key.txt``."""
    return f"{scheme}://{volume}{ensure_leading_slash(path)}"


def location_uri(scheme: str, volume: str, path: str) -> str:
    """Build a location URI such as ``s3://bucket/some/prefix/``."""
    return f"{scheme}://{volume}{ensure_trailing_slash(ensure_leading_slash(path))}"
