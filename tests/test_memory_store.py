"""Tests for the memory file store."""

from pathlib import Path

import pytest

from toolchat.memory.memory_document import (
    get_category,
    parse_memory,
)
from toolchat.memory.memory_store import (
    MemoryStore,
    StorageError,
)


def test_read_missing_file(tmp_path: Path) -> None:
    """A missing file reads as None and loads as an empty document."""

    store = MemoryStore(tmp_path / "CLAUDE.md")
    assert store.read() is None
    assert store.load().is_empty


def test_write_creates_parent_directories(tmp_path: Path) -> None:
    """Writing into a fresh directory works."""

    store = MemoryStore(tmp_path / "nested" / "dir" / "CLAUDE.md")
    store.write("hello\n")
    assert store.read() == "hello\n"


def test_save_and_load(tmp_path: Path) -> None:
    """A saved document loads back unchanged."""

    store = MemoryStore(tmp_path / "CLAUDE.md")
    doc = parse_memory("notes\n## Build\nmake\n")
    store.save(doc)
    assert store.load() == doc


def test_unreadable_file_loads_empty(tmp_path: Path) -> None:
    """Storage errors on load degrade to an empty document."""

    store = MemoryStore(tmp_path)  # a directory cannot be read as text
    with pytest.raises(StorageError):
        store.read()
    assert store.load().is_empty


def test_update_category_read_modify_write(tmp_path: Path) -> None:
    """Updating a category preserves the rest of the file."""

    path = tmp_path / "CLAUDE.md"
    path.write_text("notes\n\n## Build\nmake\n", encoding="utf-8")
    store = MemoryStore(path)

    doc = store.update_category("build", "make test")
    assert get_category(doc, "Build") == "make\n\nmake test"
    assert parse_memory(path.read_text(encoding="utf-8")) == doc
    assert doc.uncategorized == "notes"


def test_update_category_propagates_storage_errors(tmp_path: Path) -> None:
    """An unreadable file is never overwritten."""

    store = MemoryStore(tmp_path)
    with pytest.raises(StorageError):
        store.update_category("Build", "make")


def test_storage_error_is_an_os_error() -> None:
    """Callers catching OSError also see storage failures."""

    assert issubclass(StorageError, OSError)
