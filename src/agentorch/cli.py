"""CLI entry point for agentorch."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml

from agentorch.core.errors import AgentOrchError
from agentorch.core.graph import TaskGraph
from agentorch.core.orchestrator import OrchestrationResult, Orchestrator
from agentorch.core.planner import make_plan
from agentorch.core.tools import Tool
from agentorch.core.types import TaskSpec
from agentorch.recipes.pipeline import research_pipeline
from agentorch.recipes.trip_planning import TripPreferences, TripRequest, trip_planning
from agentorch.tools.claude import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, ClaudeTools
from agentorch.tools.code_exec import CodeExecTool


def load_spec(path: str) -> TaskSpec:
    """Load a TaskSpec from a YAML or JSON file."""
    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return TaskSpec.from_dict(data)


def build_tools(model: str, max_tokens: int) -> dict[str, Tool]:
    claude = ClaudeTools(model=model, max_tokens=max_tokens)
    return {**claude.registry(), **CodeExecTool(writer=claude).registry()}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentorch",
        description="Plan and orchestrate multi-step agent tasks",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Anthropic model for LLM tools")
    parser.add_argument("--max-tokens", type=int, default=DEFAULT_MAX_TOKENS, help="Max output tokens per call")
    parser.add_argument("--strict", action="store_true", help="Fail when graph nodes never become ready")
    parser.add_argument("--dry-run", action="store_true", help="Print the plan or graph waves without executing")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run a TaskSpec from a YAML/JSON file")
    run.add_argument("spec", help="Path to the task spec file")

    pipeline = sub.add_parser("pipeline", help="Run the four-agent research pipeline on a topic")
    pipeline.add_argument("topic", help="Research topic")

    trip = sub.add_parser("trip", help="Run the trip planning graph")
    trip.add_argument("--destination", required=True)
    trip.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    trip.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")
    trip.add_argument("--budget", default="moderate", choices=["budget", "moderate", "luxury"])
    trip.add_argument("--travelers", type=int, default=1)
    trip.add_argument("--pace", default="moderate", choices=["relaxed", "moderate", "packed"])
    trip.add_argument("--cuisine", action="append", default=[], help="Preferred cuisine (repeatable)")
    trip.add_argument("--activity", action="append", default=[], help="Preferred activity (repeatable)")

    return parser


def _print_dry_run(spec: TaskSpec) -> None:
    if spec.graph is not None and spec.graph.nodes:
        graph = TaskGraph.from_spec(spec.graph)
        waves, stalled = graph.preview_waves()
        print(f"Nodes: {len(graph)}")
        print(f"Waves: {len(waves)}")
        for i, wave in enumerate(waves):
            print(f"  Wave {i}: {wave}")
        if stalled:
            print(f"  Never ready: {stalled}")
        return

    plan = make_plan(spec)
    print(f"Plan: {plan.intent.value} ({plan.explain})")
    for i, group in enumerate(plan.groups):
        print(f"  Group {i}: {[step.kind for step in group]}")


def _print_result(result: OrchestrationResult) -> None:
    summary = result.summary()
    print(f"\nDone in {result.duration_ms:.0f}ms")
    print(f"  nodes: {summary['nodes']}  waves: {summary['waves']}  tokens: {summary['total_tokens']}")
    if result.stalled:
        print(f"  never ran: {result.stalled}")
    print()
    print(result.result)


async def _run(spec: TaskSpec, args: argparse.Namespace) -> int:
    if args.dry_run:
        _print_dry_run(spec)
        print("\nDry run, nothing executed.")
        return 0

    orchestrator = Orchestrator(build_tools(args.model, args.max_tokens), strict=args.strict)
    try:
        result = await orchestrator.run(spec)
    except AgentOrchError as e:
        print(f"\nFailed: {e}", file=sys.stderr)
        return 1

    _print_result(result)
    return 0 if result.success else 1


def _spec_from_args(args: argparse.Namespace) -> TaskSpec | None:
    if args.command == "run":
        return load_spec(args.spec)
    if args.command == "pipeline":
        return research_pipeline(args.topic)
    if args.command == "trip":
        prefs = TripPreferences(cuisine=args.cuisine, activities=args.activity, pace=args.pace)
        return trip_planning(
            TripRequest(
                destination=args.destination,
                start_date=args.start,
                end_date=args.end,
                budget=args.budget,
                preferences=prefs,
                travelers=args.travelers,
            )
        )
    return None


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        spec = _spec_from_args(args)
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        print(f"Invalid task spec: {e}", file=sys.stderr)
        sys.exit(1)

    if spec is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(spec, args)))
