"""Orchestrator — wave-scheduled graph executor with runtime graph extension."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from agentorch.core.errors import GraphStallError
from agentorch.core.executor import as_registry, execute_plan
from agentorch.core.graph import TaskGraph
from agentorch.core.memory import Memory
from agentorch.core.node import EvalVerdict, NodeEnv, NodeMetrics, USAGE_PREFIX, execute_node
from agentorch.core.planner import make_plan
from agentorch.core.tools import Tool
from agentorch.core.trace import Trace
from agentorch.core.types import GraphSpec, TaskSpec

logger = logging.getLogger(__name__)

LINEAR_ARTIFACT_KEY = "plan"


class ReadyQueue:
    """FIFO of node ids ready to run. A node id is accepted at most once per run."""

    def __init__(self) -> None:
        self._queue: deque[str] = deque()
        self._seen: set[str] = set()

    def push(self, node_id: str) -> bool:
        if node_id in self._seen:
            return False
        self._seen.add(node_id)
        self._queue.append(node_id)
        return True

    def drain(self) -> list[str]:
        items = list(self._queue)
        self._queue.clear()
        return items

    def pending(self) -> list[str]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)


@dataclass
class OrchestrationResult:
    success: bool
    result: str
    artifacts: dict[str, dict[str, Any]] = field(default_factory=dict)
    metrics: dict[str, NodeMetrics] = field(default_factory=dict)
    stalled: list[str] = field(default_factory=list)
    waves: list[list[str]] = field(default_factory=list)
    duration_ms: float = 0.0

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "nodes": len(self.artifacts),
            "waves": len(self.waves),
            "stalled": list(self.stalled),
            "duration_ms": self.duration_ms,
            "total_tokens": sum(m.total_tokens or 0 for m in self.metrics.values()),
        }


@dataclass
class GraphRun:
    """Mutable state of one graph run; discarded when the run ends."""

    graph: TaskGraph
    topic: str
    channels: dict[str, list[str]] = field(default_factory=dict)
    memories: dict[str, Memory] = field(default_factory=dict)
    artifacts: dict[str, dict[str, Any]] = field(default_factory=dict)
    metrics: dict[str, NodeMetrics] = field(default_factory=dict)
    executed: set[str] = field(default_factory=set)
    waves: list[list[str]] = field(default_factory=list)


class Orchestrator:
    """Execute a TaskSpec: its graph wave by wave, or a linear plan when it has none.

    Nodes whose predecessors are all finalized run concurrently in one wave;
    the next wave starts once every member of the current one is done.
    ``eval`` nodes may add nodes and edges; added nodes that are immediately
    ready join the current wave.

    With ``strict=True`` a run that leaves nodes unexecuted (cycle, or a
    dependency that never completes) raises ``GraphStallError``; otherwise the
    stalled ids are logged and reported on the result.
    """

    def __init__(
        self,
        tools: Mapping[str, Tool],
        *,
        trace: Trace | None = None,
        data: Any = None,
        strict: bool = False,
    ) -> None:
        self.tools = as_registry(tools)
        self.trace = trace if trace is not None else Trace()
        self.data = data
        self.strict = strict
        self.last_run: GraphRun | None = None

    async def run(self, spec: TaskSpec) -> OrchestrationResult:
        start = time.monotonic()
        self.trace.info("orchestrator.start", topic=spec.run_topic)
        graph_mode = spec.graph is not None and bool(spec.graph.nodes)
        if graph_mode:
            result = await self._run_graph(spec, spec.graph)
        else:
            result = await self._run_linear(spec)
        result.duration_ms = round((time.monotonic() - start) * 1000, 1)
        self.trace.info("orchestrator.complete", length=len(result.result), mode="graph" if graph_mode else "plan")
        return result

    async def _run_linear(self, spec: TaskSpec) -> OrchestrationResult:
        memory = Memory()
        plan = make_plan(spec)
        start = time.monotonic()
        res = await execute_plan(plan, self.tools, memory, self.trace, self.data, spec.constraints)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        return OrchestrationResult(
            success=res.success,
            result=res.result,
            artifacts={LINEAR_ARTIFACT_KEY: memory.docs_snapshot()},
            metrics={LINEAR_ARTIFACT_KEY: NodeMetrics.from_usage(elapsed_ms, memory.latest_json(USAGE_PREFIX))},
        )

    async def _run_graph(self, spec: TaskSpec, graph: GraphSpec) -> OrchestrationResult:
        run = GraphRun(graph=TaskGraph.from_spec(graph), topic=spec.run_topic)
        self.last_run = run

        queue = ReadyQueue()
        for node_id in run.graph.roots:
            queue.push(node_id)

        wave_idx = 0
        while len(queue):
            logger.info("Wave %d: %s", wave_idx, queue.pending())
            finished = await self._run_wave(run, queue)
            run.waves.append(finished)
            for node_id in finished:
                for released in run.graph.finalize(node_id):
                    queue.push(released)
            wave_idx += 1

        stalled = [nid for nid in run.graph.node_ids if nid not in run.executed]
        if stalled:
            logger.warning("Graph stalled; never ran: %s", stalled)
            self.trace.warn("graph.stall", stalled=stalled)
            if self.strict:
                raise GraphStallError(stalled)

        # Declared output is the last node of the initial declaration, not the last to finish.
        last_declared = graph.nodes[-1].id
        channel = run.channels.get(last_declared) or []
        return OrchestrationResult(
            success=True,
            result=channel[-1] if channel else "",
            artifacts=run.artifacts,
            metrics=run.metrics,
            stalled=stalled,
            waves=run.waves,
        )

    async def _run_wave(self, run: GraphRun, queue: ReadyQueue) -> list[str]:
        """Run everything in ``queue`` concurrently, including nodes admitted mid-wave.

        Returns node ids in completion order. The first node exception cancels
        the rest of the wave and propagates.
        """
        env = NodeEnv(tools=self.tools, trace=self.trace, topic=run.topic, channels=run.channels, data=self.data)
        owners: dict[asyncio.Task[None], str] = {}

        def spawn() -> set[asyncio.Task[None]]:
            started = set()
            for node_id in queue.drain():
                task = asyncio.ensure_future(self._run_node(node_id, run, env, queue))
                owners[task] = node_id
                started.add(task)
            return started

        finished: list[str] = []
        pending = spawn()
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                errors = [exc for exc in (task.exception() for task in done) if exc is not None]
                if errors:
                    if len(errors) > 1:
                        logger.warning("%d nodes failed in the same step; raising the first", len(errors))
                    raise errors[0]
                finished.extend(owners[task] for task in done)
                pending |= spawn()
        except BaseException:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise
        return finished

    async def _run_node(self, node_id: str, run: GraphRun, env: NodeEnv, queue: ReadyQueue) -> None:
        node = run.graph.get_node(node_id)
        memory = run.memories.setdefault(node_id, Memory())
        logger.info("Running %s (%s)", node_id, node.kind.value)
        self.trace.info("node.start", id=node_id, kind=node.kind.value)

        outcome = await execute_node(node, env, memory)

        run.channels.setdefault(node_id, []).append(outcome.output)
        run.artifacts[node_id] = outcome.artifacts
        run.metrics[node_id] = outcome.metrics
        run.executed.add(node_id)
        if outcome.verdict is not None and not outcome.verdict.passed:
            self._extend(run.graph, outcome.verdict, queue)

        logger.info("Finished %s in %.1fms", node_id, outcome.metrics.elapsed_ms)
        self.trace.info("node.end", id=node_id, length=len(outcome.output), elapsed_ms=outcome.metrics.elapsed_ms)

    def _extend(self, graph: TaskGraph, verdict: EvalVerdict, queue: ReadyQueue) -> list[str]:
        """Merge an eval verdict into ``graph``; admit new nodes that are already ready."""
        added = [node.id for node in verdict.add_nodes if graph.add_node(node)]
        linked = [(e.source, e.target) for e in verdict.add_edges if graph.add_edge(e.source, e.target)]
        self.trace.info(
            "graph.extend",
            add_nodes=added,
            add_edges=linked,
            ignored_nodes=len(verdict.add_nodes) - len(added),
            dropped_edges=len(verdict.add_edges) - len(linked),
        )
        admitted = [nid for nid in added if graph.in_degree(nid) == 0 and queue.push(nid)]
        if admitted:
            logger.info("Admitted into current wave: %s", admitted)
        return added


async def orchestrate(
    spec: TaskSpec,
    tools: Mapping[str, Tool],
    trace: Trace | None = None,
    data: Any = None,
    *,
    strict: bool = False,
) -> OrchestrationResult:
    """Convenience wrapper: build an ``Orchestrator`` and run ``spec`` once."""
    return await Orchestrator(tools, trace=trace, data=data, strict=strict).run(spec)
