"""
Pydantic models for toolchat API requests and responses.
This module defines the request and response schemas used by the toolchat API.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from toolchat.core.schema import (
    Message,
    RoutingDecision,
    ToolResult,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the assistant")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")
    force_tools: Optional[bool] = Field(
        None, description="Override forced tool use for this turn (default from settings)"
    )


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    session_id: str
    tool_results: List[ToolResult] = Field(default_factory=list)
    routing: Optional[RoutingDecision] = None


class MemoryUpdateRequest(BaseModel):
    """Write text into one category of the memory file."""

    category: str = Field(..., min_length=1, description="Category heading, matched case-insensitively")
    body: str = Field(..., description="Text to store under the category")
    mode: Literal["append", "replace"] = "append"


class MemoryUpdateResponse(BaseModel):
    """Outcome of a memory update."""

    updated: bool
    categories: List[str] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    """Transcript of one session."""

    session_id: str
    messages: List[Message]


class ToolInfo(BaseModel):
    """Public description of a catalog tool."""

    name: str
    description: str
    parameters: Dict[str, Dict[str, Any]]
