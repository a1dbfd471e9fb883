"""
Schema definitions for session <-> model <-> tool messages.

These data models serve as the contract between the conversation session, the tool execution loop,
the intent router and individual tools.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """One entry of the conversation transcript."""

    role: Role
    content: str


class ToolCall(BaseModel):
    """A tool invocation request extracted from model output."""

    name: str = Field(..., description="Requested tool name")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the tool")
    span: Tuple[int, int] = Field((0, 0), description="Start/end offsets of the source block")
    raw: str = Field("", description="Exact source text of the invocation block")
    parse_error: Optional[str] = Field(None, description="Set when the payload was not valid JSON")


class ToolResult(BaseModel):
    """Outcome of one tool execution (or of a failed attempt)."""

    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """True when the tool ran without error."""
        return self.error is None


class RoutingDecision(BaseModel):
    """Tool invocation synthesized by the intent router."""

    tool_name: str
    intro_text: str
    invocation_markup: str
    rule: str = "default"


class TurnResult(BaseModel):
    """What a single conversation turn hands back to the caller."""

    response_text: str
    tool_results: List[ToolResult] = Field(default_factory=list)
    routing: Optional[RoutingDecision] = None  # Set only by the forced tool-use path
