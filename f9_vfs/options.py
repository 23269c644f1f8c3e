"""Configuration shared by every object-store backend."""

from __future__ import annotations

import dataclasses
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from .interfaces import TOUCH_COPY_MIN_BUFFER_SIZE
from .retry import no_retry, policy_from_attempts
from .validation import validate_buffer_size, validate_connection_info

OptionsT = TypeVar("OptionsT", bound="ObjectStoreOptions")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    message = f"Option '{name}' expects a boolean, got {value!r}"
    raise ValueError(message)


@dataclass(frozen=True)
class ObjectStoreOptions:
    """Options understood by every object-store FileSystem.

    Attributes:
        retry: Policy wrapping remote metadata, listing and copy calls.
        temp_dir: Directory for spill files; ``None`` uses the system default.
        file_buffer_size: Buffer for cross-backend copies. Values below
            ``TOUCH_COPY_MIN_BUFFER_SIZE`` are raised to it.
        consistency_retries: Polls after a committing close until the object
            is visible; 0 disables polling.
        consistency_delay: Seconds between those polls.

    """

    retry: Callable[[Callable[[], Any]], Any] = no_retry
    temp_dir: str | None = None
    file_buffer_size: int = 0
    consistency_retries: int = 0
    consistency_delay: float = 1.0

    def __post_init__(self) -> None:
        validate_buffer_size(self.file_buffer_size)

    @property
    def copy_buffer_size(self) -> int:
        """Return the effective buffered-copy size."""
        return max(self.file_buffer_size, TOUCH_COPY_MIN_BUFFER_SIZE)

    @property
    def spill_dir(self) -> str:
        """Return the directory spill files are created in."""
        return self.temp_dir or tempfile.gettempdir()

    def replace(self: OptionsT, **changes: Any) -> OptionsT:
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_mapping(cls: type[OptionsT], connection_info: Mapping[str, Any]) -> OptionsT:
        """Build options from a mapping such as parsed URI query parameters.

        String values are coerced to the type of each field's default. The
        special key ``retries`` selects an exponential backoff policy with
        that many attempts.

        Raises:
            TypeError: If ``connection_info`` is not a mapping.
            ValueError: If a key is unknown or a value cannot be coerced.

        """
        info = dict(validate_connection_info(connection_info))
        values: dict[str, Any] = {}
        if "retries" in info:
            values["retry"] = policy_from_attempts(int(info.pop("retries")))
        known = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(info) - set(known))
        if unknown:
            message = f"Unknown options for {cls.__name__}: {', '.join(unknown)}"
            raise ValueError(message)
        for name, value in info.items():
            values[name] = _coerce(name, known[name].default, value)
        return cls(**values)


def _coerce(name: str, default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        return _parse_bool(name, value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value
