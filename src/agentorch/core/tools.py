"""Tool contract and registry.

A tool is any async callable ``tool(args, ctx) -> output``. Tools are black
boxes to the core: they may write artifacts to ``ctx.memory`` and events to
``ctx.trace``, and may raise to signal failure.
"""

from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from agentorch.core.errors import UnknownToolError
from agentorch.core.memory import Memory
from agentorch.core.trace import Trace


class ToolKind(Enum):
    """Step kinds the planner and the graph orchestrator emit."""

    SEARCH = "search"
    FETCH = "fetch"
    ANSWER = "answer"
    SUMMARIZE = "summarize"
    STRUCTURED = "structured"
    CODE_EXEC = "code.exec"


@dataclass
class ToolContext:
    memory: Memory
    trace: Trace
    data: Any = None


Tool = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


class ToolRegistry(Mapping[str, Tool]):
    """Name → tool mapping, validated at construction.

    Keys are exact step kinds (``"answer"``, ``"code.exec"``) or arbitrary names
    used by ``custom`` nodes (``"image.validate"``).
    """

    def __init__(self, tools: Mapping[str, Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for name, tool in (tools or {}).items():
            self.register(name, tool)

    def register(self, name: str | ToolKind, tool: Tool) -> None:
        key = name.value if isinstance(name, ToolKind) else name
        if not key:
            raise ValueError("Tool name must be a non-empty string")
        if not callable(tool):
            raise TypeError(f"Tool {key!r} is not callable: {tool!r}")
        self._tools[key] = tool

    def resolve(self, kind: str | ToolKind) -> Tool:
        """Look up a tool by exact kind; raise ``UnknownToolError`` if absent."""
        key = kind.value if isinstance(kind, ToolKind) else kind
        try:
            return self._tools[key]
        except KeyError:
            raise UnknownToolError(key) from None

    def __getitem__(self, key: str) -> Tool:
        return self._tools[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"ToolRegistry({sorted(self._tools)!r})"
