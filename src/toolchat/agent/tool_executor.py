"""Dispatches tool calls to the tool catalog and wraps errors into results."""

import logging
from time import perf_counter
from typing import (
    Any,
    Dict,
)

from toolchat.core.schema import (
    ToolCall,
    ToolResult,
)
from toolchat.tools import ToolCatalog

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "tool not found"


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class ToolNotFoundError(ToolExecutionError):
    """Raised when the requested tool is not in the catalog."""


def execute_tool(catalog: ToolCatalog, name: str, args: Dict[str, Any] | None = None) -> Any:
    """
    Look up *name* in *catalog* and invoke it with *args*.

    Parameters
    ----------
    catalog:
        The catalog to look the tool up in.
    name:
        The registered tool name.
    args:
        Keyword arguments to pass verbatim to the tool function.  If *None*,
        an empty dict is assumed.

    Returns
    -------
    Any
        Whatever the tool function returns.

    Raises
    ------
    ToolNotFoundError
        If the tool is not registered.
    ToolExecutionError
        If the tool invocation raises an exception.
    """

    if args is None:
        args = {}

    descriptor = catalog.get(name)
    if descriptor is None:
        raise ToolNotFoundError(TOOL_NOT_FOUND)

    try:
        logger.debug("Executing tool '%s' with args=%s", name, args)
        return descriptor.execute(args)
    except TypeError as exc:
        # Argument mismatch - give the caller a clean exception.
        logger.exception("Argument error while executing tool '%s'", name)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc


def run_tool_call(catalog: ToolCatalog, call: ToolCall) -> ToolResult:
    """
    Execute one parsed invocation and always return a :class:`ToolResult`.

    Parse errors, unknown tools and tool failures are recorded in ``error`` with ``output=None``.
    """
    if call.parse_error is not None:
        logger.warning("Malformed invocation of '%s': %s", call.name, call.parse_error)
        return ToolResult(tool_name=call.name, args={}, error=call.parse_error)

    start = perf_counter()
    try:
        output = execute_tool(catalog, call.name, call.args)
    except ToolNotFoundError as exc:
        logger.warning("Requested tool '%s' was not found", call.name)
        return ToolResult(tool_name=call.name, args=call.args, error=str(exc))
    except ToolExecutionError as exc:
        return ToolResult(
            tool_name=call.name,
            args=call.args,
            error=str(exc),
            duration_ms=(perf_counter() - start) * 1000.0,
        )

    return ToolResult(
        tool_name=call.name,
        args=call.args,
        output=output,
        duration_ms=(perf_counter() - start) * 1000.0,
    )
