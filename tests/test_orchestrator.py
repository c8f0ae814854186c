"""Tests for the graph orchestrator."""

import asyncio
import gc
import json

import pytest

from agentorch.core.errors import GraphStallError, ToolExecutionError, UnknownToolError
from agentorch.core.orchestrator import Orchestrator, ReadyQueue, orchestrate
from agentorch.core.trace import Trace
from agentorch.core.types import (
    Constraints,
    EdgeSpec,
    GraphSpec,
    Intent,
    NodeKind,
    NodeSpec,
    Plan,
    Step,
    TaskSpec,
    TaskType,
)


def node(node_id: str, kind: NodeKind = NodeKind.ANSWER, prompt: str | None = None, **kw) -> NodeSpec:
    return NodeSpec(id=node_id, kind=kind, prompt=prompt, **kw)


def graph_spec(nodes: list[NodeSpec], edges: list[tuple[str, str]] = (), topic: str = "topic") -> TaskSpec:
    return TaskSpec(
        goal=topic,
        graph=GraphSpec(nodes=nodes, edges=[EdgeSpec(a, b) for a, b in edges]),
        topic=topic,
    )


async def answer(args, ctx):
    return "ANS:" + args["query"]


class Timeline:
    """Answer tool that sleeps and records (query, start, end) for overlap checks."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.spans: dict[str, tuple[float, float]] = {}

    async def __call__(self, args, ctx):
        loop = asyncio.get_running_loop()
        start = loop.time()
        await asyncio.sleep(self.delay)
        self.spans[args["query"]] = (start, loop.time())
        return args["query"]


class ScriptedEval:
    """Structured tool returning queued verdicts, then ``{"pass": True}``."""

    def __init__(self, *verdicts: dict) -> None:
        self.verdicts = list(verdicts)
        self.calls: list[dict] = []

    async def __call__(self, args, ctx):
        self.calls.append(args)
        return self.verdicts.pop(0) if self.verdicts else {"pass": True}


class TestScenarios:
    @pytest.mark.asyncio
    async def test_single_answer_node_topic(self):
        spec = graph_spec([node("A", prompt="{{topic}}")], topic="hello")
        result = await orchestrate(spec, {"answer": answer})
        assert result.success
        assert result.result == "ANS:hello"

    @pytest.mark.asyncio
    async def test_eval_extends_graph(self):
        structured = ScriptedEval(
            {
                "pass": False,
                "addNodes": [{"id": "X", "kind": "answer"}],
                "addEdges": [{"from": "A", "to": "X"}],
            }
        )
        spec = graph_spec([node("A", NodeKind.EVAL, prompt="check {{topic}}")])
        orch = Orchestrator({"answer": answer, "structured": structured})
        result = await orch.run(spec)
        assert "X" in result.artifacts
        assert "X" in result.metrics
        assert result.waves == [["A"], ["X"]]
        assert orch.last_run.channels["X"] == ["ANS:topic"]
        assert structured.calls[0]["prompt"] == "check topic"
        assert structured.calls[0]["schema"]["required"] == ["pass"]

    @pytest.mark.asyncio
    async def test_independent_search_nodes(self):
        async def search(args, ctx):
            ctx.memory.put_doc("search_1", f"results for {args['query']}")
            return {"results": [args["query"]]}

        spec = graph_spec(
            [node("s1", NodeKind.SEARCH, prompt="{{topic}} one"), node("s2", NodeKind.SEARCH, prompt="{{topic}} two")],
            topic="cats",
        )
        orch = Orchestrator({"search": search, "answer": answer})
        result = await orch.run(spec)
        channels = orch.last_run.channels
        assert channels["s1"] == ["ANS:cats one"]
        assert channels["s2"] == ["ANS:cats two"]
        assert set(result.artifacts) == {"s1", "s2"}
        assert result.artifacts["s1"]["search_1"] == "results for cats one"
        assert len(result.waves) == 1


class TestOrdering:
    @pytest.mark.asyncio
    async def test_downstream_reads_upstream_channel(self):
        spec = graph_spec(
            [node("A", prompt="foo"), node("B", prompt="got {{channel:A.last}}")],
            edges=[("A", "B")],
        )
        result = await orchestrate(spec, {"answer": answer})
        assert result.result == "ANS:got ANS:foo"

    @pytest.mark.asyncio
    async def test_every_node_runs_once_in_dag(self):
        calls: list[str] = []

        async def counting(args, ctx):
            calls.append(args["query"])
            return args["query"]

        nodes = [node(nid, prompt=nid) for nid in ["a", "b", "c", "d", "e"]]
        edges = [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("a", "d")]
        result = await orchestrate(graph_spec(nodes, edges), {"answer": counting})
        assert sorted(calls) == ["a", "b", "c", "d", "e"]
        assert result.waves[0] in (["a", "e"], ["e", "a"])
        assert set(result.waves[1]) == {"b", "c"}
        assert result.waves[2] == ["d"]
        assert result.stalled == []

    @pytest.mark.asyncio
    async def test_structured_output_reaches_downstream_channel(self):
        async def structured(args, ctx):
            return {"tier": "luxury"}

        spec = graph_spec(
            [node("p", NodeKind.STRUCTURED, prompt="profile"), node("u", prompt="got {{channel:p.last}}")],
            edges=[("p", "u")],
        )
        orch = Orchestrator({"structured": structured, "answer": answer})
        result = await orch.run(spec)
        assert json.loads(orch.last_run.channels["p"][0]) == {"tier": "luxury"}
        assert result.result == 'ANS:got {"tier": "luxury"}'

    @pytest.mark.asyncio
    async def test_result_is_last_declared_node(self):
        spec = graph_spec(
            [node("first", prompt="one"), node("second", prompt="two")],
            edges=[("second", "first")],
        )
        result = await orchestrate(spec, {"answer": answer})
        assert result.waves == [["second"], ["first"]]
        assert result.result == "ANS:two"


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_siblings_overlap(self):
        timeline = Timeline()
        spec = graph_spec([node("p1", prompt="p1"), node("p2", prompt="p2"), node("p3", prompt="p3")])
        await orchestrate(spec, {"answer": timeline})
        starts = [s for s, _ in timeline.spans.values()]
        ends = [e for _, e in timeline.spans.values()]
        assert max(starts) < min(ends)

    @pytest.mark.asyncio
    async def test_connected_nodes_do_not_overlap(self):
        timeline = Timeline(delay=0.02)
        spec = graph_spec([node("a", prompt="a"), node("b", prompt="b")], edges=[("a", "b")])
        await orchestrate(spec, {"answer": timeline})
        assert timeline.spans["b"][0] >= timeline.spans["a"][1]


class TestDynamicExtension:
    @pytest.mark.asyncio
    async def test_existing_id_not_duplicated_or_rerun(self):
        calls: list[str] = []

        async def counting(args, ctx):
            calls.append(args["query"])
            return args["query"]

        structured = ScriptedEval(
            {"pass": False, "addNodes": [{"id": "B", "kind": "answer", "prompt": "other"}]},
        )
        spec = graph_spec([node("A", NodeKind.EVAL), node("B", prompt="b")])
        orch = Orchestrator({"answer": counting, "structured": structured})
        result = await orch.run(spec)
        assert calls == ["b"]
        assert orch.last_run.graph.get_node("B").prompt == "b"
        assert len(orch.last_run.graph) == 2
        assert set(result.artifacts) == {"A", "B"}

    @pytest.mark.asyncio
    async def test_ready_node_joins_current_wave(self):
        structured = ScriptedEval({"pass": False, "addNodes": [{"id": "X", "kind": "answer", "prompt": "x"}]})
        spec = graph_spec([node("A", NodeKind.EVAL)])
        result = await orchestrate(spec, {"answer": answer, "structured": structured})
        assert result.waves == [["A", "X"]]

    @pytest.mark.asyncio
    async def test_edge_from_finished_node_is_satisfied(self):
        structured = ScriptedEval(
            {
                "pass": False,
                "addNodes": [{"id": "X", "kind": "answer", "prompt": "{{channel:A.last}}"}],
                "addEdges": [{"from": "A", "to": "X"}],
            }
        )
        spec = graph_spec([node("A", prompt="a"), node("B", NodeKind.EVAL)], edges=[("A", "B")])
        orch = Orchestrator({"answer": answer, "structured": structured})
        result = await orch.run(spec)
        assert result.waves == [["A"], ["B", "X"]]
        assert orch.last_run.channels["X"] == ["ANS:ANS:a"]

    @pytest.mark.asyncio
    async def test_dangling_edge_dropped(self):
        structured = ScriptedEval(
            {
                "pass": False,
                "addNodes": [{"id": "X", "kind": "answer"}],
                "addEdges": [{"from": "ghost", "to": "X"}],
            }
        )
        trace = Trace()
        result = await orchestrate(graph_spec([node("A", NodeKind.EVAL)]), {"answer": answer, "structured": structured}, trace)
        assert "X" in result.artifacts
        extend = trace.named("graph.extend")[0]
        assert extend.data["dropped_edges"] == 1
        assert extend.data["add_nodes"] == ["X"]

    @pytest.mark.asyncio
    async def test_added_eval_can_extend_again(self):
        structured = ScriptedEval(
            {"pass": False, "addNodes": [{"id": "E2", "kind": "eval"}], "addEdges": [{"from": "E1", "to": "E2"}]},
            {"pass": False, "addNodes": [{"id": "fix", "kind": "answer"}], "addEdges": [{"from": "E2", "to": "fix"}]},
        )
        result = await orchestrate(graph_spec([node("E1", NodeKind.EVAL)]), {"answer": answer, "structured": structured})
        assert result.waves == [["E1"], ["E2"], ["fix"]]

    @pytest.mark.asyncio
    async def test_pass_leaves_graph_unchanged(self):
        structured = ScriptedEval({"pass": True, "addNodes": [{"id": "X", "kind": "answer"}]})
        orch = Orchestrator({"answer": answer, "structured": structured})
        result = await orch.run(graph_spec([node("A", NodeKind.EVAL)]))
        assert set(result.artifacts) == {"A"}
        assert len(orch.last_run.graph) == 1

    @pytest.mark.asyncio
    async def test_malformed_additions_do_not_abort(self):
        structured = ScriptedEval({"pass": False, "addNodes": True, "addEdges": 3})
        spec = graph_spec([node("A", NodeKind.EVAL), node("B", prompt="b")])
        orch = Orchestrator({"answer": answer, "structured": structured})
        result = await orch.run(spec)
        assert result.result == "ANS:b"
        assert len(orch.last_run.graph) == 2

    @pytest.mark.asyncio
    async def test_missing_eval_tool_passes(self):
        orch = Orchestrator({"answer": answer})
        result = await orch.run(graph_spec([node("A", NodeKind.EVAL)]))
        assert json.loads(result.result) == {"pass": True}

    @pytest.mark.asyncio
    async def test_eval_output_recorded_in_channel(self):
        verdict = {"pass": False, "addNodes": []}
        result = await orchestrate(
            graph_spec([node("A", NodeKind.EVAL)]), {"structured": ScriptedEval(verdict)}
        )
        assert json.loads(result.result) == verdict


class TestStall:
    @pytest.mark.asyncio
    async def test_cycle_reported(self):
        spec = graph_spec(
            [node("a", prompt="a"), node("b", prompt="b"), node("c", prompt="c")],
            edges=[("a", "b"), ("b", "a")],
        )
        trace = Trace()
        result = await orchestrate(spec, {"answer": answer}, trace)
        assert result.success
        assert result.stalled == ["a", "b"]
        assert result.result == "ANS:c"
        assert trace.named("graph.stall")[0].data["stalled"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stalled_last_node_gives_empty_result(self):
        spec = graph_spec([node("a", prompt="a"), node("b", prompt="b")], edges=[("a", "b"), ("b", "a")])
        result = await orchestrate(spec, {"answer": answer})
        assert result.result == ""
        assert result.artifacts == {}

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self):
        spec = graph_spec([node("a"), node("b")], edges=[("a", "b"), ("b", "a")])
        with pytest.raises(GraphStallError) as exc_info:
            await orchestrate(spec, {"answer": answer}, strict=True)
        assert exc_info.value.stalled == ["a", "b"]


class TestFailure:
    @pytest.mark.asyncio
    async def test_node_error_aborts_wave(self):
        finished: list[str] = []

        async def tool(args, ctx):
            if args["query"] == "bad":
                await asyncio.sleep(0.01)
                raise RuntimeError("boom")
            await asyncio.sleep(0.5)
            finished.append(args["query"])
            return "ok"

        spec = graph_spec([node("bad", prompt="bad"), node("slow", prompt="slow"), node("after", prompt="after")], [("slow", "after")])
        with pytest.raises(ToolExecutionError, match="boom"):
            await orchestrate(spec, {"answer": tool})
        assert finished == []

    @pytest.mark.asyncio
    async def test_artifacts_from_earlier_waves_inspectable(self):
        async def tool(args, ctx):
            ctx.memory.put_doc("note", args["query"])
            if args["query"] == "b":
                raise ValueError("nope")
            return "ok"

        orch = Orchestrator({"answer": tool})
        spec = graph_spec([node("a", prompt="a"), node("b", prompt="b")], [("a", "b")])
        with pytest.raises(ToolExecutionError):
            await orch.run(spec)
        assert orch.last_run.memories["a"].get_doc("note") == "a"
        assert orch.last_run.memories["b"].get_doc("note") == "b"
        assert orch.last_run.channels["a"] == ["ok"]

    @pytest.mark.asyncio
    async def test_simultaneous_failures_all_retrieved(self, caplog):
        async def tool(args, ctx):
            raise RuntimeError(args["query"])

        spec = graph_spec([node("x", prompt="x"), node("y", prompt="y")])
        with pytest.raises(ToolExecutionError):
            await orchestrate(spec, {"answer": tool})
        gc.collect()
        assert "never retrieved" not in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_tool_propagates(self):
        with pytest.raises(UnknownToolError):
            await orchestrate(graph_spec([node("a", NodeKind.SUMMARIZE)]), {"answer": answer})


class TestMetrics:
    @pytest.mark.asyncio
    async def test_usage_artifact_becomes_metrics(self):
        async def metered(args, ctx):
            ctx.memory.put_doc("usage_1", json.dumps({"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}))
            ctx.memory.put_doc("answer_1", "x")
            return "x"

        result = await orchestrate(graph_spec([node("a", prompt="q")]), {"answer": metered})
        m = result.metrics["a"]
        assert (m.input_tokens, m.output_tokens, m.total_tokens) == (10, 5, 15)
        assert m.elapsed_ms >= 0
        assert result.summary()["total_tokens"] == 15

    @pytest.mark.asyncio
    async def test_no_usage_only_elapsed(self):
        result = await orchestrate(graph_spec([node("a", prompt="q")]), {"answer": answer})
        assert result.metrics["a"].total_tokens is None


class TestLinearMode:
    @pytest.mark.asyncio
    async def test_no_graph_runs_plan(self):
        async def search(args, ctx):
            return {"hits": 1}

        spec = TaskSpec(goal="solar sails", type=TaskType.RESEARCH)
        result = await orchestrate(spec, {"search": search, "answer": answer})
        assert result.result == "ANS:solar sails"
        assert set(result.artifacts) == {"plan"}
        assert result.waves == []

    @pytest.mark.asyncio
    async def test_empty_graph_falls_back_to_plan(self):
        spec = TaskSpec(goal="g", graph=GraphSpec())
        result = await orchestrate(spec, {"answer": answer})
        assert result.result == "ANS:g"

    @pytest.mark.asyncio
    async def test_budget_applies(self):
        calls: list[int] = []

        async def step(args, ctx):
            calls.append(args["n"])
            return str(args["n"])

        override = Plan(intent=Intent.CUSTOM, groups=(tuple(Step(kind="s", args={"n": i}) for i in range(5)),))
        spec = TaskSpec(goal="g", override_plan=override, constraints=Constraints(max_steps=3))
        result = await orchestrate(spec, {"s": step})
        assert result.success
        assert calls == [0, 1, 2]


class TestReadyQueue:
    def test_push_once(self):
        q = ReadyQueue()
        assert q.push("a") is True
        assert q.push("a") is False
        assert q.drain() == ["a"]
        assert q.push("a") is False
        assert len(q) == 0

    def test_fifo(self):
        q = ReadyQueue()
        for nid in ["b", "a", "c"]:
            q.push(nid)
        assert q.pending() == ["b", "a", "c"]
        assert q.drain() == ["b", "a", "c"]
