"""Shared fixtures: a scripted model client and a throw-away project directory."""

from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
)

import pytest

from toolchat.agent.model_client import BaseModelClient
from toolchat.config import settings


class ScriptedClient(BaseModelClient):
    """
    Model client that replays canned replies.

    A reply that is an exception instance is raised instead of returned.  Every call is recorded
    with the transcript and system prompt it received.
    """

    def __init__(self, replies: List[Any]):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def send(self, transcript, system_prompt, on_chunk=None, cancel_event=None):
        self.calls.append(
            {
                "transcript": [msg.model_copy() for msg in transcript],
                "system_prompt": system_prompt,
            }
        )
        if not self.replies:
            raise AssertionError("Unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if on_chunk is not None:
            on_chunk(reply)
        return reply


@pytest.fixture
def make_client():
    """Factory for :class:`ScriptedClient` instances."""
    return ScriptedClient


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A small project tree used as ``PROJECT_ROOT``."""
    (tmp_path / "README.md").write_text("# Demo\n\nA demo project.\n", encoding="utf-8")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "guide.md").write_text("## Guide\nUse the logger.\n", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(
        "import logging\n\nlogger = logging.getLogger(__name__)\n\n\ndef run():\n    logger.info('run')\n",
        encoding="utf-8",
    )
    (tmp_path / "src" / "index.ts").write_text("export const x = 1;\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.md").write_text("ignored\n", encoding="utf-8")

    monkeypatch.setattr(settings, "PROJECT_ROOT", str(tmp_path))
    return tmp_path
