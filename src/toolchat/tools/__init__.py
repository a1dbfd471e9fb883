"""
Tool catalog for toolchat.

This module provides the :class:`ToolCatalog` the conversation engine looks tools up in, a
:class:`ToolDescriptor` wrapping each executable tool, and a decorator that registers functions in
the catalog of built-in tools.  Tools are functions that are called with keyword arguments and
return a JSON-serializable value.
"""

import inspect
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    get_type_hints,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

logger = logging.getLogger(__name__)


class ToolDescriptor(BaseModel):
    """A named, described, executable tool."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str = ""
    parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    executor: Callable[..., Any]

    def execute(self, args: Optional[Mapping[str, Any]] = None) -> Any:
        """Run the tool with *args* passed as keyword arguments."""
        return self.executor(**dict(args or {}))

    def signature(self) -> str:
        """Compact ``name(param: type, ...)`` form used in prompts."""
        params = ", ".join(
            f"{param}: {info['type']}" + ("" if info["required"] else "?")
            for param, info in self.parameters.items()
        )
        return f"{self.name}({params})"

    @classmethod
    def from_function(
        cls, name: str, fn: Callable[..., Any], description: Optional[str] = None
    ) -> "ToolDescriptor":
        """Build a descriptor from *fn*, reading the description from its docstring."""
        if description is None:
            doc = inspect.getdoc(fn) or ""
            description = doc.split("\n\n", 1)[0].replace("\n", " ").strip()
        return cls(
            name=name, description=description, parameters=describe_parameters(fn), executor=fn
        )


def describe_parameters(fn: Callable[..., Any]) -> Dict[str, Dict[str, Any]]:
    """Extract parameter name, type and required-ness from *fn*'s signature."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    params: Dict[str, Dict[str, Any]] = {}
    for param_name, param in sig.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        param_type = type_hints.get(param_name, "any")
        param_type_name = getattr(param_type, "__name__", str(param_type))
        params[param_name] = {
            "type": param_type_name,
            "required": param.default is inspect.Parameter.empty,
        }
    return params


class ToolCatalog:
    """Name -> :class:`ToolDescriptor` mapping; re-registering a name overwrites it."""

    def __init__(self, tools: Iterable[ToolDescriptor] = ()) -> None:
        self._tools: Dict[str, ToolDescriptor] = {}
        for tool in tools:
            self.register(tool)

    def register(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            logger.debug("Replacing tool '%s'", descriptor.name)
        else:
            logger.debug("Registering tool '%s'", descriptor.name)
        self._tools[descriptor.name] = descriptor

    def register_function(
        self, name: str, fn: Callable[..., Any], description: Optional[str] = None
    ) -> ToolDescriptor:
        """Wrap *fn* in a descriptor and register it under *name*."""
        descriptor = ToolDescriptor.from_function(name, fn, description)
        self.register(descriptor)
        return descriptor

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def list(self) -> List[ToolDescriptor]:
        """Descriptors in registration order."""
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def copy(self) -> "ToolCatalog":
        return ToolCatalog(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(list(self._tools.values()))


BUILTIN_TOOLS = ToolCatalog()
"""Catalog the built-in file tools register themselves in."""


def register_tool(
    name: str, description: Optional[str] = None, catalog: Optional[ToolCatalog] = None
) -> Callable:
    """
    Register a tool function under *name*.

    Used as a decorator:

        @register_tool("GlobTool")
        def glob_tool(pattern: str, path: str | None = None) -> list[dict]:
            ...

    Parameters
    ----------
    name: str
        The name the model uses to request the tool.
    description: str | None
        Prompt description; defaults to the first paragraph of the function docstring.
    catalog: ToolCatalog | None
        Target catalog; defaults to :data:`BUILTIN_TOOLS`.

    Returns
    -------
    Callable
        A decorator that registers the function and returns it unchanged.
    """
    target = catalog if catalog is not None else BUILTIN_TOOLS

    def wrapper(fn: Callable) -> Callable:
        target.register_function(name, fn, description)
        return fn

    return wrapper


def default_catalog() -> ToolCatalog:
    """Return a fresh catalog holding the built-in tools."""
    from toolchat.tools import (  # pylint: disable=import-outside-toplevel,unused-import
        file_tools,
    )

    return BUILTIN_TOOLS.copy()
