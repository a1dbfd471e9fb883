"""Persist the memory document to a markdown file (``CLAUDE.md`` by default)."""

import logging
from pathlib import Path

from toolchat.memory.memory_document import (
    MemoryDocument,
    UpsertMode,
    parse_memory,
    serialize_memory,
    upsert_category,
)

logger = logging.getLogger(__name__)


class StorageError(OSError):
    """Raised when the memory file cannot be read or written."""


class MemoryStore:
    """
    File-backed memory document.

    The store never picks a location on its own; the caller passes the path.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    # ------------------------------------------------------------------ #
    # Raw I/O
    # ------------------------------------------------------------------ #
    def read(self) -> str | None:
        """Return the file text, or None if the file does not exist."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Could not read memory file {self.path}: {exc}") from exc

    def write(self, text: str) -> None:
        """Replace the file contents with *text*, creating parent directories."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not write memory file {self.path}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Document level
    # ------------------------------------------------------------------ #
    def load(self) -> MemoryDocument:
        """Parse the memory file; any storage failure yields an empty document."""
        try:
            text = self.read()
        except StorageError as exc:
            logger.warning("%s; continuing with an empty memory document", exc)
            return MemoryDocument()

        if text is None:
            logger.debug("Memory file not found: %s", self.path)
            return MemoryDocument()

        logger.info("Loaded memory file: %s", self.path)
        return parse_memory(text)

    def save(self, doc: MemoryDocument) -> None:
        """Write *doc* to the memory file."""
        self.write(serialize_memory(doc))

    def update_category(self, name: str, body: str, mode: UpsertMode = "append") -> MemoryDocument:
        """
        Read-modify-write a single category and return the updated document.

        Unlike :meth:`load`, read failures propagate here so an unreadable file is never
        overwritten with a partial document.
        """
        doc = upsert_category(parse_memory(self.read()), name, body, mode=mode)
        self.save(doc)
        logger.info("Updated memory category '%s' (%s)", name, mode)
        return doc
