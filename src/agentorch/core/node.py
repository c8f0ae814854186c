"""Per-node execution — each graph node kind maps to a small plan or a direct tool call."""

import json
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from agentorch.core.errors import AgentOrchError, ToolExecutionError
from agentorch.core.executor import execute_plan
from agentorch.core.memory import Memory
from agentorch.core.placeholders import resolve, resolve_payload
from agentorch.core.planner import make_plan
from agentorch.core.tools import Tool, ToolContext, ToolKind, ToolRegistry
from agentorch.core.trace import Trace
from agentorch.core.types import (
    Constraints,
    EdgeSpec,
    Intent,
    NodeKind,
    NodeSpec,
    Plan,
    Step,
    TaskSpec,
    TaskType,
)

SEARCH_MAX_STEPS = 2
USAGE_PREFIX = "usage_"

EVAL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "pass": {"type": "boolean"},
        "addNodes": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "id": {"type": "string"},
                    "kind": {"type": "string"},
                    "label": {"type": "string"},
                    "prompt": {"type": "string"},
                    "tool": {"type": "string"},
                    "payload": {"type": "object", "additionalProperties": True},
                    "includeImages": {"type": "boolean"},
                    "depth": {"type": "string", "enum": ["standard", "deep"]},
                },
                "required": ["id", "kind"],
            },
        },
        "addEdges": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {"from": {"type": "string"}, "to": {"type": "string"}},
                "required": ["from", "to"],
            },
        },
    },
    "required": ["pass"],
}


@dataclass
class NodeMetrics:
    elapsed_ms: float
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_usage(cls, elapsed_ms: float, usage: Mapping[str, Any]) -> "NodeMetrics":
        def pick(*keys: str) -> int | None:
            for key in keys:
                if usage.get(key) is not None:
                    return usage[key]
            return None

        return cls(
            elapsed_ms=elapsed_ms,
            input_tokens=pick("input_tokens", "inputTokens"),
            output_tokens=pick("output_tokens", "outputTokens"),
            total_tokens=pick("total_tokens", "totalTokens"),
        )


@dataclass
class EvalVerdict:
    """Structured output of an ``eval`` node. Only ``passed=False`` grows the graph."""

    passed: bool
    add_nodes: list[NodeSpec] = field(default_factory=list)
    add_edges: list[EdgeSpec] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_output(cls, output: Any) -> "EvalVerdict":
        if isinstance(output, str):
            try:
                output = json.loads(output)
            except ValueError:
                output = {}
        if not isinstance(output, Mapping):
            output = {}
        raw = dict(output)
        nodes = raw.get("add_nodes", raw.get("addNodes"))
        edges = raw.get("add_edges", raw.get("addEdges"))
        if not isinstance(nodes, list):
            nodes = []
        if not isinstance(edges, list):
            edges = []
        return cls(
            passed=raw.get("pass") is not False,
            add_nodes=[NodeSpec.from_dict(n) for n in nodes if isinstance(n, Mapping) and "id" in n],
            add_edges=[EdgeSpec.from_dict(e) for e in edges if isinstance(e, Mapping)],
            raw=raw,
        )


@dataclass
class NodeEnv:
    """What a running node may see: tools, the run's trace, channels and topic."""

    tools: ToolRegistry
    trace: Trace
    topic: str
    channels: Mapping[str, Sequence[str]]
    data: Any = None

    def resolve(self, text: str | None) -> str:
        return resolve(text, self.channels, self.topic)

    def resolve_payload(self, payload: Any) -> Any:
        return resolve_payload(payload, self.channels, self.topic)


@dataclass
class NodeOutcome:
    node_id: str
    output: str
    artifacts: dict[str, Any]
    metrics: NodeMetrics
    verdict: EvalVerdict | None = None


def _encode(output: Any) -> str:
    return output if isinstance(output, str) else json.dumps(output)


async def _invoke(name: str, tool: Tool, args: Any, env: NodeEnv, memory: Memory) -> Any:
    """Call a tool outside the executor, with the executor's error wrapping."""
    ctx = ToolContext(memory=memory, trace=env.trace, data=env.data)
    try:
        return await tool(args, ctx)
    except AgentOrchError:
        raise
    except Exception as e:
        env.trace.error("step.error", kind=name, message=str(e))
        raise ToolExecutionError(name, e) from e


async def _run_plan(plan: Plan, env: NodeEnv, memory: Memory, constraints: Constraints | None = None) -> str:
    res = await execute_plan(plan, env.tools, memory, env.trace, env.data, constraints)
    # Channels carry the raw tool output; only missing output falls back to the plan result.
    if res.output is None or isinstance(res.output, str):
        return res.result
    return _encode(res.output)


def _single(kind: ToolKind, label: str, args: dict[str, Any], intent: Intent = Intent.ANSWER) -> Plan:
    return Plan.single(Step(kind=kind.value, label=label, args=args), intent=intent)


async def _run_search(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    constraints = Constraints(max_steps=SEARCH_MAX_STEPS)
    task_input: dict[str, Any] = {
        "query": env.resolve(node.prompt) or env.topic,
        "include_images": node.include_images,
    }
    if node.depth:
        task_input["depth"] = node.depth
    spec = TaskSpec(
        goal=node.label or f"Search: {env.topic}",
        type=TaskType.RESEARCH,
        input=task_input,
        constraints=constraints,
    )
    return await _run_plan(make_plan(spec, {"hints": ["web"]}), env, memory, constraints)


async def _run_answer(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    args = {"query": env.resolve(node.prompt) or env.topic}
    return await _run_plan(_single(ToolKind.ANSWER, node.label or "Answer", args), env, memory)


async def _run_summarize(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    args = {"text": env.resolve(node.prompt)}
    return await _run_plan(_single(ToolKind.SUMMARIZE, node.label or "Summarize", args), env, memory)


async def _run_structured(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    args = {"prompt": env.resolve(node.prompt)}
    return await _run_plan(_single(ToolKind.STRUCTURED, node.label or "Structured", args), env, memory)


async def _run_eval(node: NodeSpec, env: NodeEnv, memory: Memory) -> EvalVerdict:
    structured = env.tools.get(ToolKind.STRUCTURED.value)
    if structured is None:
        return EvalVerdict(passed=True, raw={"pass": True})
    args = {
        "prompt": env.resolve(node.prompt),
        "schema": EVAL_SCHEMA,
        "name": "eval_orchestrator",
        "description": "Return pass boolean and optional nodes/edges to add",
    }
    out = await _invoke(ToolKind.STRUCTURED.value, structured, args, env, memory)
    return EvalVerdict.from_output(out)


async def _run_code(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    label = node.label or "Code Execution"
    args = {"prompt": env.resolve(node.prompt) or env.topic}
    intent = Intent.CUSTOM if node.kind == NodeKind.CUSTOM else Intent.CODE_EXEC
    return await _run_plan(_single(ToolKind.CODE_EXEC, label, args, intent), env, memory)


async def _call_direct(tool_name: str, node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    tool = env.tools.resolve(tool_name)
    payload = env.resolve_payload(node.payload) if node.payload is not None else {}
    return _encode(await _invoke(tool_name, tool, payload, env, memory))


async def _run_custom(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    if node.tool and node.tool in env.tools:
        return await _call_direct(node.tool, node, env, memory)
    return await _run_code(node, env, memory)


async def _run_code_exec(node: NodeSpec, env: NodeEnv, memory: Memory) -> str:
    if node.payload and ToolKind.CODE_EXEC.value in env.tools:
        return await _call_direct(ToolKind.CODE_EXEC.value, node, env, memory)
    return await _run_code(node, env, memory)


NodeRunner = Callable[[NodeSpec, NodeEnv, Memory], Awaitable[Any]]

RUNNERS: dict[NodeKind, NodeRunner] = {
    NodeKind.SEARCH: _run_search,
    NodeKind.ANSWER: _run_answer,
    NodeKind.SUMMARIZE: _run_summarize,
    NodeKind.STRUCTURED: _run_structured,
    NodeKind.EVAL: _run_eval,
    NodeKind.CUSTOM: _run_custom,
    NodeKind.CODE_EXEC: _run_code_exec,
    NodeKind.OTHER: _run_answer,
}


async def execute_node(node: NodeSpec, env: NodeEnv, memory: Memory) -> NodeOutcome:
    """Run ``node`` against its private ``memory``, with timing metadata.

    Exceptions propagate; the orchestrator aborts the wave.
    """
    start = time.monotonic()
    out = await RUNNERS[node.kind](node, env, memory)
    elapsed_ms = round((time.monotonic() - start) * 1000, 1)

    verdict = out if isinstance(out, EvalVerdict) else None
    output = json.dumps(verdict.raw) if verdict is not None else _encode(out)
    return NodeOutcome(
        node_id=node.id,
        output=output,
        artifacts=memory.docs_snapshot(),
        metrics=NodeMetrics.from_usage(elapsed_ms, memory.latest_json(USAGE_PREFIX)),
        verdict=verdict,
    )
