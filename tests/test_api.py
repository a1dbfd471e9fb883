"""Tests for the HTTP API, with a scripted model behind every session."""

from pathlib import Path
from typing import Any, List

import pytest
from fastapi.testclient import TestClient

import toolchat.api.app as api_app
from toolchat.agent.agent_loop import ToolAugmentedSession
from toolchat.agent.model_client import TransportError
from toolchat.memory.memory_store import MemoryStore
from toolchat.tools import ToolCatalog


@pytest.fixture
def replies() -> List[Any]:
    return []


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, make_client, replies: List[Any]) -> TestClient:
    def factory() -> ToolAugmentedSession:
        return ToolAugmentedSession(
            client=make_client(replies),
            catalog=ToolCatalog(),
            memory_store=MemoryStore(tmp_path / "CLAUDE.md"),
            base_prompt="base",
            use_memory=True,
            force_tools=False,
        )

    monkeypatch.setattr(api_app, "sessions", {})
    monkeypatch.setattr(api_app, "session_factory", factory)
    return TestClient(api_app.app)


def test_health(client: TestClient) -> None:
    """Liveness probe."""

    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_list_sessions(client: TestClient) -> None:
    """Created sessions are listed."""

    session_id = client.post("/sessions").json()["session_id"]
    assert client.get("/sessions").json() == [session_id]


def test_agent_creates_session_when_missing(client: TestClient, replies: List[Any]) -> None:
    """A message without a session ID starts a new conversation."""

    replies.append("hello!")
    body = client.post("/agent", json={"message": "hi"}).json()

    assert body["reply"] == "hello!"
    assert body["session_id"] in client.get("/sessions").json()
    assert body["tool_results"] == []
    assert body["routing"] is None


def test_agent_unknown_session(client: TestClient) -> None:
    """An unknown session ID is a 404."""

    response = client.post("/agent", json={"message": "hi", "session_id": "nope"})
    assert response.status_code == 404


def test_agent_transport_error_is_bad_gateway(client: TestClient, replies: List[Any]) -> None:
    """Model failures map to 502 and leave only the user turn."""

    replies.append(TransportError("upstream down"))
    session_id = client.post("/sessions").json()["session_id"]
    response = client.post("/agent", json={"message": "hi", "session_id": session_id})

    assert response.status_code == 502
    assert "upstream down" in response.json()["detail"]
    roles = [msg["role"] for msg in client.get(f"/sessions/{session_id}/history").json()["messages"]]
    assert roles == ["system", "user"]


def test_agent_forced_tools(client: TestClient, replies: List[Any]) -> None:
    """force_tools returns the routing decision."""

    replies.append("Here it is.")
    body = client.post("/agent", json={"message": "READMEの内容を見せて", "force_tools": True}).json()

    assert body["routing"]["tool_name"] == "GlobTool"
    assert body["reply"].endswith("Here it is.")


def test_clear_history(client: TestClient, replies: List[Any]) -> None:
    """Deleting history keeps only the system prompt."""

    replies.append("hello!")
    session_id = client.post("/agent", json={"message": "hi"}).json()["session_id"]

    assert client.delete(f"/sessions/{session_id}/history").status_code == 200
    messages = client.get(f"/sessions/{session_id}/history").json()["messages"]
    assert [msg["role"] for msg in messages] == ["system"]


def test_update_memory(client: TestClient, tmp_path: Path) -> None:
    """Memory updates are persisted and rendered into the prompt."""

    session_id = client.post("/sessions").json()["session_id"]
    response = client.put(
        f"/sessions/{session_id}/memory", json={"category": "Build", "body": "make all"}
    )

    assert response.json() == {"updated": True, "categories": ["Build"]}
    assert "## Build" in (tmp_path / "CLAUDE.md").read_text(encoding="utf-8")
    system = client.get(f"/sessions/{session_id}/history").json()["messages"][0]["content"]
    assert '<context name="Build">\nmake all\n</context>' in system


def test_update_memory_refreshes_other_sessions(client: TestClient) -> None:
    """Sessions sharing the memory file see the new category without reconnecting."""

    first = client.post("/sessions").json()["session_id"]
    second = client.post("/sessions").json()["session_id"]
    client.put(f"/sessions/{first}/memory", json={"category": "Build", "body": "make all"})

    system = client.get(f"/sessions/{second}/history").json()["messages"][0]["content"]
    assert '<context name="Build">\nmake all\n</context>' in system


def test_update_memory_unknown_session(client: TestClient) -> None:
    """Memory updates need an existing session."""

    response = client.put("/sessions/nope/memory", json={"category": "Build", "body": "x"})
    assert response.status_code == 404


def test_update_memory_blank_category(client: TestClient) -> None:
    """Whitespace-only category names are rejected."""

    session_id = client.post("/sessions").json()["session_id"]
    response = client.put(f"/sessions/{session_id}/memory", json={"category": "  ", "body": "x"})
    assert response.status_code == 400


def test_list_tools(client: TestClient) -> None:
    """The built-in tools are described."""

    names = [tool["name"] for tool in client.get("/tools").json()]
    assert "GlobTool" in names
    assert "BashTool" in names
