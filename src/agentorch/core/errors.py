"""Error taxonomy for planning, execution and graph orchestration."""


class AgentOrchError(Exception):
    """Base class for all orchestration errors."""


class PlannerError(AgentOrchError):
    """Raised when a plan cannot be built, e.g. an override plan with no groups."""


class UnknownToolError(AgentOrchError):
    """Raised when a step kind has no registered tool."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"No tool registered for step kind: {kind!r}")
        self.kind = kind


class ToolExecutionError(AgentOrchError):
    """Raised when a tool call fails. The original exception is chained."""

    def __init__(self, kind: str, cause: BaseException) -> None:
        super().__init__(f"Tool {kind!r} failed: {cause}")
        self.kind = kind


class GraphStallError(AgentOrchError):
    """Raised in strict mode when nodes never became ready (cycle or dangling dependency)."""

    def __init__(self, stalled: list[str]) -> None:
        super().__init__(f"Graph stalled; {len(stalled)} node(s) never ran: {stalled}")
        self.stalled = stalled
