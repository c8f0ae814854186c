"""Task planning, step execution and wave-scheduled graph orchestration for agent tools."""

from agentorch.core.errors import (
    AgentOrchError,
    GraphStallError,
    PlannerError,
    ToolExecutionError,
    UnknownToolError,
)
from agentorch.core.executor import ExecutionResult, execute_plan
from agentorch.core.graph import TaskGraph
from agentorch.core.memory import Memory
from agentorch.core.orchestrator import OrchestrationResult, Orchestrator, orchestrate
from agentorch.core.planner import make_plan
from agentorch.core.tools import ToolContext, ToolKind, ToolRegistry
from agentorch.core.trace import Trace
from agentorch.core.types import (
    Constraints,
    EdgeSpec,
    GraphSpec,
    NodeKind,
    NodeSpec,
    Plan,
    Step,
    TaskSpec,
    TaskType,
)

__all__ = [
    "AgentOrchError",
    "Constraints",
    "EdgeSpec",
    "ExecutionResult",
    "GraphSpec",
    "GraphStallError",
    "Memory",
    "NodeKind",
    "NodeSpec",
    "OrchestrationResult",
    "Orchestrator",
    "Plan",
    "PlannerError",
    "Step",
    "TaskGraph",
    "TaskSpec",
    "TaskType",
    "ToolContext",
    "ToolExecutionError",
    "ToolKind",
    "ToolRegistry",
    "Trace",
    "UnknownToolError",
    "execute_plan",
    "make_plan",
    "orchestrate",
]
