"""
Textual protocol for requesting and reporting tool calls.

Two dialects coexist.  The *strict* dialect is what the model is asked to emit and what the engine
executes:

    <tool_use name="GlobTool">
    {"pattern": "**/*.md"}
    </tool_use>

Executed requests are replaced in the transcript by:

    <tool_result name="GlobTool">
    [ ... ]
    </tool_result>

The *display* dialect is only ever shown to the operator (synthesized invocations in forced
tool-use mode) and is never executed:

    <function_calls>
    <invoke name="GlobTool">
    <parameter name="pattern">**/*.md</parameter>
    </invoke>
    </function_calls>

Tag names and attribute spelling are a compatibility contract with downstream renderers.
"""

import json
import re
from typing import (
    Any,
    Iterable,
    List,
    Mapping,
    Sequence,
    Tuple,
)

from toolchat.core.schema import (
    ToolCall,
    ToolResult,
)
from toolchat.tools import ToolDescriptor

FUNCTION_CALLS_OPEN = "<function_calls>"

TOOL_USE_CLOSE = "</tool_use>"

_TOOL_USE_OPEN_RE = re.compile(r'<tool_use name="([^"]*)">')
_DECODER = json.JSONDecoder()
_INVOKE_RE = re.compile(r'<invoke name="([^"]*)">(.*?)</invoke>', re.DOTALL)
_PARAMETER_RE = re.compile(r'<parameter name="([^"]*)">(.*?)</parameter>', re.DOTALL)
_FUNCTION_CALLS_RE = re.compile(r"<function_calls>(.*?)</function_calls>", re.DOTALL)


class ToolCallParseError(RuntimeError):
    """Raised when a ``<tool_use>`` payload is not a JSON object."""


# ---------------------------------------------------------------------------
# Strict dialect
# ---------------------------------------------------------------------------
def parse_arguments(payload: str) -> dict[str, Any]:
    """
    Decode a ``<tool_use>`` payload.

    Whitespace-only payloads mean "no arguments".

    Raises
    ------
    ToolCallParseError
        If the payload is not valid JSON or not a JSON object.
    """
    if not payload.strip():
        return {}
    try:
        value = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ToolCallParseError(f"Invalid JSON arguments: {exc}") from exc
    if not isinstance(value, dict):
        raise ToolCallParseError(
            f"Arguments must be a JSON object, got {type(value).__name__}"
        )
    return value


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _payload_end(text: str, start: int) -> int:
    """
    Offset of the ``</tool_use>`` that closes a payload starting at *start*, or -1.

    A JSON value is decoded first so closing tags quoted inside its strings are skipped; anything
    else ends at the next closing tag.
    """
    try:
        _, value_end = _DECODER.raw_decode(text, _skip_space(text, start))
    except json.JSONDecodeError:
        return text.find(TOOL_USE_CLOSE, start)
    close = _skip_space(text, value_end)
    if text.startswith(TOOL_USE_CLOSE, close):
        return close
    return text.find(TOOL_USE_CLOSE, start)


def parse_strict(text: str) -> List[ToolCall]:
    """
    Extract every ``<tool_use>`` block from *text*, left to right.

    A block whose payload cannot be decoded is still returned, with ``parse_error`` set and empty
    ``args``, so the caller can report it back to the model.
    """
    calls: List[ToolCall] = []
    pos = 0
    while True:
        opening = _TOOL_USE_OPEN_RE.search(text, pos)
        if opening is None:
            break
        close = _payload_end(text, opening.end())
        if close < 0:
            break
        end = close + len(TOOL_USE_CLOSE)
        name, payload = opening.group(1), text[opening.end() : close]
        args: dict[str, Any] = {}
        error = None
        try:
            args = parse_arguments(payload)
        except ToolCallParseError as exc:
            error = str(exc)
        calls.append(
            ToolCall(
                name=name,
                args=args,
                span=(opening.start(), end),
                raw=text[opening.start() : end],
                parse_error=error,
            )
        )
        pos = end
    return calls


def format_tool_use(name: str, args: Mapping[str, Any]) -> str:
    """Render a strict-dialect invocation block."""
    return f'<tool_use name="{name}">\n{json.dumps(dict(args), ensure_ascii=False)}\n</tool_use>'


def result_payload(result: ToolResult) -> Any:
    """The value serialized into a ``<tool_result>`` block."""
    if result.error is not None:
        return {"error": result.error}
    return result.output


def format_tool_result(result: ToolResult) -> str:
    """Render a ``<tool_result>`` block for *result*."""
    body = json.dumps(result_payload(result), indent=2, ensure_ascii=False, default=str)
    return f'<tool_result name="{result.tool_name}">\n{body}\n</tool_result>'


def replace_with_result(text: str, call: ToolCall, result: ToolResult) -> str:
    """
    Replace the source block of *call* in *text* with the result block.

    The recorded span is used when it still points at the original block; otherwise the first
    occurrence of the raw block text is replaced.
    """
    if not call.raw:
        return text
    start, end = call.span
    if text[start:end] == call.raw:
        return text[:start] + format_tool_result(result) + text[end:]
    return text.replace(call.raw, format_tool_result(result), 1)


def _spans_fit(text: str, ordered: Sequence[Tuple[ToolCall, ToolResult]]) -> bool:
    cursor = 0
    for call, _ in ordered:
        start, end = call.span
        if start < cursor or not call.raw or text[start:end] != call.raw:
            return False
        cursor = end
    return True


def splice_results(text: str, pairs: Iterable[Tuple[ToolCall, ToolResult]]) -> str:
    """Replace several invocation blocks in one pass, keeping all other text untouched."""
    ordered = sorted(pairs, key=lambda pair: pair[0].span[0])
    if not _spans_fit(text, ordered):
        for call, result in ordered:
            if call.raw:
                text = text.replace(call.raw, format_tool_result(result), 1)
        return text

    pieces: List[str] = []
    cursor = 0
    for call, result in ordered:
        start, end = call.span
        pieces.append(text[cursor:start])
        pieces.append(format_tool_result(result))
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


def build_tool_prompt(tools: Sequence[ToolDescriptor]) -> str:
    """Instruction block listing *tools* and the strict invocation grammar."""
    listing = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
    return f"""\
You have the following tools available:
{listing}

If you need to use any of these tools to answer the user's question, format your response as follows:
<tool_use name="ToolName">
{{
  "param1": "value1",
  "param2": "value2"
}}
</tool_use>

You can use multiple tools if needed. After using a tool, provide your complete answer based on the tool results."""


# ---------------------------------------------------------------------------
# Display dialect
# ---------------------------------------------------------------------------
def format_function_calls(name: str, params: Mapping[str, str]) -> str:
    """Render a display-dialect invocation block."""
    lines = [FUNCTION_CALLS_OPEN, f'<invoke name="{name}">']
    lines.extend(f'<parameter name="{key}">{value}</parameter>' for key, value in params.items())
    lines.extend(["</invoke>", "</function_calls>"])
    return "\n".join(lines)


def contains_function_calls(text: str) -> bool:
    """True if *text* already carries a display-dialect block."""
    return FUNCTION_CALLS_OPEN in text


def parse_function_calls(text: str) -> List[ToolCall]:
    """Extract display-dialect invocations (parameter values are kept as raw strings)."""
    calls: List[ToolCall] = []
    for block in _FUNCTION_CALLS_RE.finditer(text):
        offset = block.start(1)
        for invoke in _INVOKE_RE.finditer(block.group(1)):
            params = {key: value for key, value in _PARAMETER_RE.findall(invoke.group(2))}
            calls.append(
                ToolCall(
                    name=invoke.group(1),
                    args=params,
                    span=(offset + invoke.start(), offset + invoke.end()),
                    raw=invoke.group(0),
                )
            )
    return calls
