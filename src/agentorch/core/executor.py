"""Step executor — runs a Plan's groups against the tool registry."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from agentorch.core.errors import AgentOrchError, ToolExecutionError
from agentorch.core.memory import Memory
from agentorch.core.tools import Tool, ToolContext, ToolRegistry
from agentorch.core.trace import Trace
from agentorch.core.types import Constraints, Plan

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    success: bool
    result: str
    steps_run: int = 0
    steps_skipped: int = 0
    warnings: list[str] = field(default_factory=list)
    output: Any = None


def normalize_result(output: Any, memory: Memory) -> str:
    """String output → ``output.summary`` → latest memory artifact → ``""``."""
    if isinstance(output, str):
        return output
    if isinstance(output, Mapping) and isinstance(output.get("summary"), str):
        return output["summary"]
    latest = memory.latest()
    if latest is not None:
        value = latest[1]
        return value if isinstance(value, str) else str(value)
    return ""


def as_registry(tools: Mapping[str, Tool]) -> ToolRegistry:
    return tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)


async def execute_plan(
    plan: Plan,
    tools: Mapping[str, Tool],
    memory: Memory,
    trace: Trace,
    data: Any = None,
    constraints: Constraints | None = None,
) -> ExecutionResult:
    """Execute ``plan`` group by group.

    ``constraints.max_steps`` is a global budget: once that many steps have
    run, the rest are skipped with a warning and the partial result is
    still reported as success. Unknown kinds and tool exceptions abort.
    """
    registry = as_registry(tools)
    ctx = ToolContext(memory=memory, trace=trace, data=data)
    budget = constraints.max_steps if constraints else None
    report = ExecutionResult(success=True, result="")
    last_output: Any = None

    trace.info("plan.start", intent=plan.intent.value, groups=len(plan.groups), explain=plan.explain)

    for group_idx, group in enumerate(plan.groups):
        for step in group:
            if budget is not None and report.steps_run >= budget:
                report.steps_skipped += 1
                continue

            tool = registry.resolve(step.kind)
            trace.info("step.start", kind=step.kind, label=step.label, group=group_idx)
            try:
                last_output = await tool(dict(step.args), ctx)
            except AgentOrchError:
                raise
            except Exception as e:
                trace.error("step.error", kind=step.kind, message=str(e))
                raise ToolExecutionError(step.kind, e) from e
            report.steps_run += 1
            trace.info("step.end", kind=step.kind, label=step.label)

    if report.steps_skipped:
        message = f"step budget of {budget} exhausted; skipped {report.steps_skipped} step(s)"
        logger.warning(message)
        trace.warn("executor.budget", max_steps=budget, skipped=report.steps_skipped)
        report.warnings.append(message)

    report.output = last_output
    report.result = normalize_result(last_output, memory)
    trace.info("plan.end", steps=report.steps_run, length=len(report.result))
    return report
