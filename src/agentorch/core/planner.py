"""Planner — pure mapping from a TaskSpec to a bounded Plan."""

from collections.abc import Mapping
from typing import Any

from agentorch.core.errors import PlannerError
from agentorch.core.tools import ToolKind
from agentorch.core.types import FinalDisposition, Intent, Plan, Step, TaskSpec, TaskType

DEFAULT_GROUP_WIDTH = 6
MAX_FETCH_SOURCES = 2
DEFAULT_SUMMARY_SENTENCES = 2


def _chunk(steps: list[Step], width: int) -> tuple[tuple[Step, ...], ...]:
    width = max(1, width)
    return tuple(tuple(steps[i : i + width]) for i in range(0, len(steps), width))


def _hints(state: Mapping[str, Any] | None) -> list[str]:
    if not state:
        return []
    return [str(h) for h in state.get("hints", []) or []]


def _research_plan(spec: TaskSpec, hints: list[str]) -> Plan:
    data = spec.input
    query = data.get("query") or spec.goal
    raw_sources = data.get("sources") or []
    if isinstance(raw_sources, str):
        raw_sources = [raw_sources]
    sources = [str(s) for s in raw_sources]

    search_args: dict[str, Any] = {
        "query": query,
        "sources": sources,
        "intent": data.get("intent", Intent.RESEARCH.value),
        "schema": data.get("schema"),
    }
    if data.get("include_images") or data.get("includeImages"):
        search_args["include_images"] = True
    if data.get("depth"):
        search_args["depth"] = data["depth"]

    steps = [Step(kind=ToolKind.SEARCH.value, label="Search", args=search_args)]
    for url in sources[:MAX_FETCH_SOURCES]:
        steps.append(Step(kind=ToolKind.FETCH.value, label=f"Fetch {url}", args={"url": url}))

    answer_args: dict[str, Any] = {"query": query}
    image_urls = data.get("image_urls") or data.get("imageUrls")
    if image_urls:
        answer_args["image_urls"] = list(image_urls)
    steps.append(Step(kind=ToolKind.ANSWER.value, label="Answer", args=answer_args))

    width = spec.constraints.max_steps or DEFAULT_GROUP_WIDTH
    explain = f"research: search, {min(len(sources), MAX_FETCH_SOURCES)} fetch, answer; width={width}"
    if hints:
        explain += f"; hints={','.join(hints)}"
    return Plan(intent=Intent.RESEARCH, groups=_chunk(steps, width), explain=explain)


def _summarize_plan(spec: TaskSpec, hints: list[str]) -> Plan:
    data = spec.input
    steps: list[Step] = []
    if data.get("url"):
        steps.append(Step(kind=ToolKind.FETCH.value, label="Fetch document", args={"url": data["url"]}))

    summarize_args: dict[str, Any] = {
        "text": data.get("text", ""),
        "sentences": int(data.get("sentences") or DEFAULT_SUMMARY_SENTENCES),
    }
    doc_id = data.get("doc_id") or data.get("docId")
    if doc_id:
        summarize_args["doc_id"] = doc_id
    steps.append(Step(kind=ToolKind.SUMMARIZE.value, label="Summarize", args=summarize_args))

    explain = f"summarize: {len(steps)} step(s)"
    if hints:
        explain += f"; hints={','.join(hints)}"
    return Plan(
        intent=Intent.SUMMARIZE,
        groups=(tuple(steps),),
        final=FinalDisposition.SUMMARY,
        explain=explain,
    )


def make_plan(spec: TaskSpec, state: Mapping[str, Any] | None = None) -> Plan:
    """Build a plan for ``spec``. No I/O, no side effects.

    ``constraints.max_steps`` bounds the width of each group here, not the
    total number of steps; the executor applies the global budget.
    ``state`` may carry planner ``hints``, which are echoed in ``Plan.explain``.
    """
    if spec.override_plan is not None:
        if not spec.override_plan.groups:
            raise PlannerError("Override plan has no groups")
        return spec.override_plan

    hints = _hints(state)
    if spec.type == TaskType.RESEARCH:
        return _research_plan(spec, hints)
    if spec.type == TaskType.SUMMARIZE:
        return _summarize_plan(spec, hints)

    return Plan.single(
        Step(kind=ToolKind.ANSWER.value, label="Answer", args={"query": spec.goal}),
        explain=f"fallback: answer goal ({spec.type.value})",
    )
