"""Tests for the scheme-to-filesystem registry."""

from __future__ import annotations

import pytest

from f9_vfs import BackendRegistry, MemFileSystem, OSFileSystem


@pytest.fixture
def registry() -> BackendRegistry:
    """Provide an empty registry."""
    return BackendRegistry()


def test_register_and_get(registry: BackendRegistry) -> None:
    """A registered filesystem is returned for its scheme."""
    fs = MemFileSystem()
    registry.register("mem", fs)
    assert registry.get("mem") is fs
    assert registry.exists("mem") is True


def test_register_duplicate_rejected(registry: BackendRegistry) -> None:
    """A scheme cannot be registered twice without replace."""
    registry.register("mem", MemFileSystem())
    with pytest.raises(ValueError, match="already registered"):
        registry.register("mem", MemFileSystem())


def test_register_replace(registry: BackendRegistry) -> None:
    """replace=True overwrites the existing registration."""
    registry.register("mem", MemFileSystem())
    replacement = MemFileSystem()
    registry.register("mem", replacement, replace=True)
    assert registry.get("mem") is replacement


def test_unregister(registry: BackendRegistry) -> None:
    """Unregistered schemes disappear."""
    registry.register("mem", MemFileSystem())
    registry.unregister("mem")
    assert registry.exists("mem") is False
    with pytest.raises(KeyError):
        registry.unregister("mem")


def test_get_missing(registry: BackendRegistry) -> None:
    """Looking up an unknown scheme raises KeyError."""
    with pytest.raises(KeyError, match="ftp"):
        registry.get("ftp")


def test_list_and_clear(registry: BackendRegistry) -> None:
    """Schemes are listed in registration order and can be cleared."""
    registry.register("mem", MemFileSystem())
    registry.register("file", OSFileSystem())
    assert registry.list() == ["mem", "file"]
    registry.clear()
    assert registry.list() == []


def test_registries_are_independent() -> None:
    """Separate registries do not share registrations."""
    first, second = BackendRegistry(), BackendRegistry()
    first.register("mem", MemFileSystem())
    assert second.exists("mem") is False
