"""Main orchestration loop for toolchat."""

from __future__ import annotations

import logging
import random
import threading
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from toolchat.agent.intent_router import (
    HeuristicIntentRouter,
    dummy_response,
)
from toolchat.agent.model_client import (
    BaseModelClient,
    ChunkCallback,
    TransportError,
    TurnCancelled,
    load_client,
)
from toolchat.agent.session import ConversationSession
from toolchat.agent.tool_executor import run_tool_call
from toolchat.config import settings
from toolchat.core.schema import (
    Message,
    RoutingDecision,
    ToolResult,
    TurnResult,
)
from toolchat.memory.memory_document import (
    MemoryDocument,
    UpsertMode,
    build_system_prompt,
)
from toolchat.memory.memory_store import (
    MemoryStore,
    StorageError,
)
from toolchat.tools import (
    ToolCatalog,
    default_catalog,
)
from toolchat.tools.tool_call_parser import (
    build_tool_prompt,
    contains_function_calls,
    parse_strict,
    splice_results,
)

logger = logging.getLogger(__name__)

FOLLOW_UP_PROMPT = "Please interpret the tool results above and provide your complete answer."

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant working inside the user's project. "
    "Answer concisely and use the available tools to inspect files before answering "
    "questions about them."
)


class LoopState(str, Enum):
    """Lifecycle of one tool-augmented turn."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    PARSING = "parsing"
    NO_TOOLS_FOUND = "no_tools_found"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FOLLOW_UP = "awaiting_follow_up"
    DONE = "done"
    ABORTED = "aborted"


def call_model(
    client: BaseModelClient,
    transcript: List[Message],
    system_prompt: str,
    on_chunk: Optional[ChunkCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Single model round-trip; a Ctrl+C during the call surfaces as :class:`TurnCancelled`."""
    try:
        return client.send(transcript, system_prompt, on_chunk=on_chunk, cancel_event=cancel_event)
    except KeyboardInterrupt as exc:
        raise TurnCancelled("Model call interrupted by operator") from exc


# ---------------------------------------------------------------------------
# Tool execution loop
# ---------------------------------------------------------------------------
class ToolExecutionLoop:
    """
    Runs one user turn through the model, executing any ``<tool_use>`` requests it emits.

    The tool-listing overlay is only ever passed to the first model call; the session's system
    prompt is left untouched.  When the model requests tools, they run sequentially in textual
    order, the spliced reply is committed as an assistant turn followed by the fixed follow-up
    user turn, and a second call produces the final answer.

    Transport failures and cancellation roll the history back to just after the user turn and
    re-raise.
    """

    def __init__(self, session: ConversationSession, catalog: ToolCatalog, client: BaseModelClient):
        self.session = session
        self.catalog = catalog
        self.client = client
        self.state = LoopState.IDLE

    def run(
        self,
        message: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TurnResult:
        base_prompt = self.session.system_prompt
        overlay = base_prompt + "\n\n" + build_tool_prompt(self.catalog.list())

        self.session.append_user(message)
        checkpoint = self.session.checkpoint()
        try:
            return self._run(base_prompt, overlay, on_chunk, cancel_event)
        except (TransportError, TurnCancelled) as exc:
            self.state = LoopState.ABORTED
            self.session.rollback(checkpoint)
            logger.warning("Turn aborted: %s", exc)
            raise

    def _run(
        self,
        base_prompt: str,
        overlay: str,
        on_chunk: Optional[ChunkCallback],
        cancel_event: Optional[threading.Event],
    ) -> TurnResult:
        self.state = LoopState.AWAITING_MODEL
        reply = call_model(self.client, self.session.transcript(), overlay, on_chunk, cancel_event)

        self.state = LoopState.PARSING
        calls = parse_strict(reply)
        if not calls:
            self.state = LoopState.NO_TOOLS_FOUND
            self.session.append_assistant(reply)
            self.state = LoopState.DONE
            return TurnResult(response_text=reply)

        self.state = LoopState.EXECUTING_TOOLS
        logger.info("Model requested %d tool call(s): %s", len(calls), [call.name for call in calls])
        results: List[ToolResult] = []
        for call in calls:
            if cancel_event is not None and cancel_event.is_set():
                raise TurnCancelled("Turn cancelled during tool execution")
            try:
                result = run_tool_call(self.catalog, call)
            except KeyboardInterrupt as exc:
                raise TurnCancelled(f"Tool '{call.name}' interrupted by operator") from exc
            if result.ok:
                logger.info("Tool '%s' finished in %.1f ms", result.tool_name, result.duration_ms)
            else:
                logger.info("Tool '%s' failed: %s", result.tool_name, result.error)
            results.append(result)

        self.session.append_assistant(splice_results(reply, zip(calls, results)))
        self.session.append_user(FOLLOW_UP_PROMPT)

        self.state = LoopState.AWAITING_FOLLOW_UP
        final = call_model(self.client, self.session.transcript(), base_prompt, on_chunk, cancel_event)
        self.session.append_assistant(final)
        self.state = LoopState.DONE
        return TurnResult(response_text=final, tool_results=results)


# ---------------------------------------------------------------------------
# Session facade
# ---------------------------------------------------------------------------
class ToolAugmentedSession:
    """
    A conversation wired to a tool catalog, a model client, the memory file and the intent router.

    With memory enabled the system prompt is ``base prompt + rendered memory``.  In forced
    tool-use mode the model is called without the tool overlay and, unless its reply already
    carries a ``<function_calls>`` block, a synthesized invocation chosen by the router is put in
    front of it.  Synthesized invocations are for display only and are never executed.
    """

    def __init__(
        self,
        client: Optional[BaseModelClient] = None,
        catalog: Optional[ToolCatalog] = None,
        memory_store: Optional[MemoryStore] = None,
        router: Optional[HeuristicIntentRouter] = None,
        base_prompt: Optional[str] = None,
        use_memory: Optional[bool] = None,
        force_tools: Optional[bool] = None,
        use_real_api: Optional[bool] = None,
        rng: Optional[random.Random] = None,
    ):
        self.client = client if client is not None else load_client()
        self.catalog = catalog if catalog is not None else default_catalog()
        self.base_prompt = base_prompt or settings.SYSTEM_PROMPT or DEFAULT_SYSTEM_PROMPT
        self.use_memory = settings.USE_MEMORY if use_memory is None else use_memory
        self.force_tools = settings.FORCE_TOOL_USE if force_tools is None else force_tools
        self.use_real_api = settings.USE_REAL_API if use_real_api is None else use_real_api
        self.memory_store = (
            memory_store
            if memory_store is not None
            else MemoryStore(Path(settings.PROJECT_ROOT) / settings.MEMORY_FILE)
        )
        self.router = (
            router
            if router is not None
            else HeuristicIntentRouter(memory_file=self.memory_store.path.name)
        )
        self._rng = rng

        self.memory = MemoryDocument()
        self.session = ConversationSession(self.base_prompt)
        self.loop = ToolExecutionLoop(self.session, self.catalog, self.client)
        self.tool_history: List[ToolResult] = []

        if self.use_memory:
            self.reload_memory()

    # ------------------------------------------------------------------ #
    # Memory
    # ------------------------------------------------------------------ #
    def reload_memory(self) -> None:
        """Re-read the memory file and rebuild the system prompt from it."""
        self.memory = self.memory_store.load()
        self.session.update_system_prompt(build_system_prompt(self.base_prompt, self.memory))

    def update_memory_category(self, name: str, body: str, mode: UpsertMode = "append") -> bool:
        """
        Write *body* into category *name* of the memory file and refresh the system prompt.

        Returns False if the memory file could not be read or written.
        """
        try:
            self.memory = self.memory_store.update_category(name, body, mode=mode)
        except StorageError as exc:
            logger.error("Memory update failed: %s", exc)
            return False
        self.session.update_system_prompt(build_system_prompt(self.base_prompt, self.memory))
        return True

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #
    def send_message(
        self,
        message: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        force_tools: Optional[bool] = None,
    ) -> TurnResult:
        """Run one user turn, forced or normal, and return the assistant's answer."""
        forced = self.force_tools if force_tools is None else force_tools
        if forced:
            result = self._forced_turn(message, on_chunk, cancel_event)
        else:
            result = self.loop.run(message, on_chunk=on_chunk, cancel_event=cancel_event)
        self.tool_history.extend(result.tool_results)
        return result

    def _forced_turn(
        self,
        message: str,
        on_chunk: Optional[ChunkCallback],
        cancel_event: Optional[threading.Event],
    ) -> TurnResult:
        self.session.append_user(message)
        checkpoint = self.session.checkpoint()

        if self.use_real_api:
            try:
                reply = call_model(
                    self.client, self.session.transcript(), self.session.system_prompt, on_chunk, cancel_event
                )
            except (TransportError, TurnCancelled):
                self.session.rollback(checkpoint)
                raise
        else:
            reply = dummy_response(self._rng)

        decision: Optional[RoutingDecision] = None
        text = reply
        if contains_function_calls(reply):
            logger.debug("Reply already carries an invocation block; leaving it as is")
        else:
            decision = self.router.decide(message, reply)
            logger.info("Forced tool use: rule '%s' -> %s", decision.rule, decision.tool_name)
            text = f"{decision.intro_text}\n{decision.invocation_markup}\n\n{reply}"

        self.session.append_assistant(text)
        return TurnResult(response_text=text, routing=decision)

    # ------------------------------------------------------------------ #
    # Housekeeping
    # ------------------------------------------------------------------ #
    @property
    def system_prompt(self) -> str:
        return self.session.system_prompt

    def clear(self) -> None:
        """Forget the conversation; the memory-backed system prompt stays."""
        self.session.clear()

    def history(self) -> List[Message]:
        return self.session.history()

    def tool_summary(self) -> Dict[str, Any]:
        """Counts of tool executions in this session, overall and per tool."""
        return {
            "total": len(self.tool_history),
            "failed": sum(1 for result in self.tool_history if not result.ok),
            "by_tool": dict(Counter(result.tool_name for result in self.tool_history)),
        }
