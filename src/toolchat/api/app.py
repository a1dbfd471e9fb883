"""
Core API backend for toolchat.

This module exposes tool-augmented conversations through a RESTful API:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "...", "force_tools": false}
- **GET /sessions/{id}/history** - the session transcript.
- **DELETE /sessions/{id}/history** - forget the conversation, keep the system prompt.
- **PUT /sessions/{id}/memory** - update one category of the memory file.
- **GET /tools** - the tool catalog.
"""

import logging
import uuid
from typing import (
    Callable,
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
)

from toolchat.agent.agent_loop import ToolAugmentedSession
from toolchat.agent.model_client import (
    TransportError,
    TurnCancelled,
)
from toolchat.api.models import (
    HistoryResponse,
    MemoryUpdateRequest,
    MemoryUpdateResponse,
    MessageRequest,
    MessageResponse,
    SessionResponse,
    ToolInfo,
)
from toolchat.common import (
    AnsiColors,
    colored_print,
)
from toolchat.config import settings
from toolchat.tools import default_catalog

logger = logging.getLogger(__name__)

# Session storage (in-memory, one conversation per ID)
sessions: Dict[str, ToolAugmentedSession] = {}

# Replaced in tests to inject a fake model client
session_factory: Callable[[], ToolAugmentedSession] = ToolAugmentedSession

app = FastAPI(title="toolchat API", version="0.1.0", description="Tool-augmented chat API")


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def create_new_session() -> str:
    """Create a conversation and return its ID."""
    session_id = str(uuid.uuid4())
    sessions[session_id] = session_factory()
    logger.info("Created session %s", session_id)
    return session_id


def get_session(session_id: str) -> ToolAugmentedSession:
    """Look up *session_id* or fail with 404."""
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    return SessionResponse(session_id=create_new_session())


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
def agent_endpoint(req: MessageRequest) -> MessageResponse:
    """Run one conversation turn; a new session is created when no ID is given."""
    session_id: Optional[str] = req.session_id
    if session_id is None:
        session_id = create_new_session()
    session = get_session(session_id)

    try:
        result = session.send_message(req.message, force_tools=req.force_tools)
    except TransportError as exc:
        logger.warning("Model call failed for session %s: %s", session_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except TurnCancelled as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return MessageResponse(
        reply=result.response_text,
        session_id=session_id,
        tool_results=result.tool_results,
        routing=result.routing,
    )


@app.get("/sessions/{session_id}/history", response_model=HistoryResponse, summary="Show history")
async def session_history(session_id: str) -> HistoryResponse:
    """Return the transcript of a session, system prompt included."""
    return HistoryResponse(session_id=session_id, messages=get_session(session_id).history())


@app.delete("/sessions/{session_id}/history", response_model=SessionResponse, summary="Clear history")
async def clear_history(session_id: str) -> SessionResponse:
    """Drop the conversation turns of a session."""
    get_session(session_id).clear()
    return SessionResponse(session_id=session_id)


@app.put("/sessions/{session_id}/memory", response_model=MemoryUpdateResponse, summary="Update memory")
def update_memory(session_id: str, req: MemoryUpdateRequest) -> MemoryUpdateResponse:
    """Write into the memory file and refresh every session that reads the same file."""
    session = get_session(session_id)
    try:
        updated = session.update_memory_category(req.category, req.body, mode=req.mode)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if updated:
        for other in sessions.values():
            if (
                other is not session
                and other.use_memory
                and other.memory_store.path == session.memory_store.path
            ):
                other.reload_memory()
    return MemoryUpdateResponse(updated=updated, categories=session.memory.category_names())


@app.get("/tools", response_model=List[ToolInfo], summary="List tools")
async def list_tools() -> List[ToolInfo]:
    """Describe the built-in tool catalog."""
    return [
        ToolInfo(name=tool.name, description=tool.description, parameters=tool.parameters)
        for tool in default_catalog()
    ]


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the library modules
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting toolchat API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump(exclude={"ANTHROPIC_API_KEY", "OPENAI_API_KEY"}))

    colored_print(f"toolchat API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "toolchat.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    run_api(reload=True)
