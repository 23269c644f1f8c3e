"""Tests for backend options and filesystem configuration."""

from __future__ import annotations

import tempfile

import pytest

from f9_vfs import (
    TOUCH_COPY_MIN_BUFFER_SIZE,
    ExponentialBackoff,
    GCSOptions,
    InMemoryObjectStore,
    LocalOptions,
    MemFileSystem,
    ObjectStoreOptions,
    S3Options,
    no_retry,
)


class TestObjectStoreOptions:
    """Shared option defaults and derived values."""

    def test_defaults(self) -> None:
        """Defaults disable retries and polling."""
        options = ObjectStoreOptions()
        assert options.retry is no_retry
        assert options.consistency_retries == 0
        assert options.copy_buffer_size == TOUCH_COPY_MIN_BUFFER_SIZE
        assert options.spill_dir == tempfile.gettempdir()

    def test_buffer_size_raised_to_minimum(self) -> None:
        """Small buffers are raised to the minimum, large ones kept."""
        assert ObjectStoreOptions(file_buffer_size=10).copy_buffer_size == TOUCH_COPY_MIN_BUFFER_SIZE
        large = TOUCH_COPY_MIN_BUFFER_SIZE * 4
        assert ObjectStoreOptions(file_buffer_size=large).copy_buffer_size == large

    def test_negative_buffer_rejected(self) -> None:
        """Negative buffer sizes are invalid."""
        with pytest.raises(ValueError, match="file_buffer_size"):
            ObjectStoreOptions(file_buffer_size=-1)

    def test_replace_returns_copy(self) -> None:
        """replace leaves the original untouched."""
        options = ObjectStoreOptions()
        changed = options.replace(temp_dir="/var/spill")
        assert changed.spill_dir == "/var/spill"
        assert options.temp_dir is None


class TestFromMapping:
    """Building options from string mappings such as URI queries."""

    def test_coerces_by_field_type(self) -> None:
        """Strings become ints, floats and booleans as the fields require."""
        options = S3Options.from_mapping(
            {
                "region": "eu-west-1",
                "max_attempts": "7",
                "force_path_style": "true",
                "consistency_delay": "0.25",
            },
        )
        assert options.region == "eu-west-1"
        assert options.max_attempts == 7
        assert options.force_path_style is True
        assert options.consistency_delay == 0.25

    def test_retries_selects_backoff(self) -> None:
        """The retries key builds an exponential backoff policy."""
        options = ObjectStoreOptions.from_mapping({"retries": "3"})
        assert isinstance(options.retry, ExponentialBackoff)
        assert options.retry.attempts == 3

    def test_unknown_key_rejected(self) -> None:
        """Unknown keys name themselves in the error."""
        with pytest.raises(ValueError, match="bogus"):
            GCSOptions.from_mapping({"bogus": "1"})

    def test_bad_boolean_rejected(self) -> None:
        """Unparseable booleans are errors."""
        with pytest.raises(ValueError, match="create_root"):
            LocalOptions.from_mapping({"create_root": "maybe"})

    def test_non_mapping_rejected(self) -> None:
        """Connection info must be a mapping."""
        with pytest.raises(TypeError):
            ObjectStoreOptions.from_mapping("retries=3")  # type: ignore[arg-type]


class TestS3Defaults:
    """S3 upload defaults."""

    def test_acl_and_encryption(self) -> None:
        """Uploads are private and encrypted unless configured otherwise."""
        options = S3Options()
        assert options.acl == "private"
        assert options.server_side_encryption == "AES256"


class TestFileSystemConfiguration:
    """with_options and with_client."""

    def test_with_options_rebuilds_client(self) -> None:
        """Changing options drops a lazily built client."""
        fs = MemFileSystem()
        first = fs.client
        assert fs.client is first
        fs.with_options(temp_dir="/var/spill")
        assert fs.options.temp_dir == "/var/spill"
        assert fs.client is not first

    def test_with_options_keeps_injected_client(self) -> None:
        """An injected client survives option changes."""
        store = InMemoryObjectStore()
        fs = MemFileSystem(client=store)
        fs.with_options(consistency_retries=2)
        assert fs.client is store

    def test_with_client(self) -> None:
        """with_client swaps the client in place."""
        store = InMemoryObjectStore()
        fs = MemFileSystem().with_client(store)
        assert fs.client is store

    def test_from_connection_info(self) -> None:
        """Filesystems can be configured from a mapping."""
        fs = MemFileSystem.from_connection_info({"consistency_retries": "2"})
        assert fs.options.consistency_retries == 2
        assert fs.scheme == "mem"
