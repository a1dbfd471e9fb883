"""Ordered message history for one conversation."""

import logging
from typing import List

from toolchat.core.schema import (
    Message,
    Role,
)

logger = logging.getLogger(__name__)


class ConversationSession:
    """
    Message history whose first entry, when present, is the single system prompt.

    Only the methods below mutate the history; :meth:`history` hands out copies.
    """

    def __init__(self, system_prompt: str | None = None) -> None:
        self._messages: List[Message] = []
        if system_prompt is not None:
            self._messages.append(Message(role="system", content=system_prompt))

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #
    def _append(self, role: Role, content: str) -> None:
        self._messages.append(Message(role=role, content=content))

    def append_user(self, text: str) -> None:
        self._append("user", text)

    def append_assistant(self, text: str) -> None:
        self._append("assistant", text)

    def update_system_prompt(self, text: str) -> None:
        """Replace the system prompt, inserting one at index 0 if there is none."""
        if self._messages and self._messages[0].role == "system":
            self._messages[0] = Message(role="system", content=text)
        else:
            self._messages.insert(0, Message(role="system", content=text))
        logger.debug("System prompt updated (%d chars)", len(text))

    def clear(self) -> None:
        """Drop every turn, keeping only the system prompt."""
        self._messages = [msg for msg in self._messages[:1] if msg.role == "system"]
        logger.debug("Conversation history cleared")

    def checkpoint(self) -> int:
        """Opaque marker for :meth:`rollback`."""
        return len(self._messages)

    def rollback(self, checkpoint: int) -> None:
        """Discard every message appended after *checkpoint*."""
        if checkpoint < len(self._messages):
            logger.debug("Rolling back %d message(s)", len(self._messages) - checkpoint)
            del self._messages[checkpoint:]

    # ------------------------------------------------------------------ #
    # Read access
    # ------------------------------------------------------------------ #
    @property
    def system_prompt(self) -> str:
        if self._messages and self._messages[0].role == "system":
            return self._messages[0].content
        return ""

    def history(self) -> List[Message]:
        """Copy of the full history, system prompt included."""
        return [msg.model_copy() for msg in self._messages]

    def transcript(self) -> List[Message]:
        """Copy of the history without the system prompt."""
        return [msg.model_copy() for msg in self._messages if msg.role != "system"]

    def __len__(self) -> int:
        return len(self._messages)
