"""Data model — task specs, plans, and graph node/edge specs.

All types load from plain dicts via ``from_dict`` so that task specs can come
straight out of YAML/JSON files. Both the camelCase boundary keys
(``maxSteps``, ``overridePlan``, ``includeImages``) and snake_case are accepted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskType(Enum):
    RESEARCH = "research"
    SUMMARIZE = "summarize"
    EDIT = "edit"
    CUSTOM = "custom"
    AD_HOC = "ad-hoc"


class Intent(Enum):
    ANSWER = "answer"
    RESEARCH = "research"
    SUMMARIZE = "summarize"
    CUSTOM = "custom"
    CODE_EXEC = "code.exec"


class FinalDisposition(Enum):
    ANSWER_ONLY = "answer_only"
    SUMMARY = "summary"


class NodeKind(Enum):
    SEARCH = "search"
    ANSWER = "answer"
    SUMMARIZE = "summarize"
    STRUCTURED = "structured"
    EVAL = "eval"
    CUSTOM = "custom"
    CODE_EXEC = "code.exec"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str | None) -> "NodeKind":
        """Map a boundary kind string to a member; unknown kinds become ``OTHER``."""
        normalized = (raw or "").strip().lower().replace("-", ".")
        for member in cls:
            if member.value == normalized:
                return member
        return cls.OTHER


def _get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class Constraints:
    max_steps: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Constraints":
        data = data or {}
        max_steps = _get(data, "max_steps", "maxSteps")
        return cls(max_steps=int(max_steps) if max_steps is not None else None)


@dataclass(frozen=True)
class Step:
    """A single tool call. ``kind`` is the tool identifier."""

    kind: str
    args: dict[str, Any] = field(default_factory=dict)
    label: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        return cls(kind=str(data["kind"]), args=dict(data.get("args") or {}), label=data.get("label"))


Group = tuple[Step, ...]


@dataclass(frozen=True)
class Plan:
    """Ordered groups of steps. Steps inside a group carry no ordering requirement."""

    intent: Intent
    groups: tuple[Group, ...]
    final: FinalDisposition = FinalDisposition.ANSWER_ONLY
    explain: str = ""

    @property
    def steps(self) -> list[Step]:
        return [step for group in self.groups for step in group]

    @classmethod
    def single(cls, step: Step, *, intent: Intent = Intent.ANSWER, explain: str = "") -> "Plan":
        """One group holding one step."""
        return cls(intent=intent, groups=((step,),), explain=explain)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        groups = tuple(
            tuple(Step.from_dict(s) for s in group) for group in (data.get("groups") or [])
        )
        return cls(
            intent=Intent(data.get("intent", Intent.ANSWER.value)),
            groups=groups,
            final=FinalDisposition(data.get("final", FinalDisposition.ANSWER_ONLY.value)),
            explain=data.get("explain", ""),
        )


@dataclass
class NodeSpec:
    """A graph node as declared by the caller or added by an eval verdict."""

    id: str
    kind: NodeKind = NodeKind.ANSWER
    label: str | None = None
    prompt: str | None = None
    tool: str | None = None
    payload: Any = None
    include_images: bool = False
    depth: str | None = None
    raw_kind: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeSpec":
        raw_kind = data.get("kind")
        return cls(
            id=str(data["id"]),
            kind=NodeKind.parse(raw_kind),
            label=data.get("label"),
            prompt=data.get("prompt"),
            tool=data.get("tool"),
            payload=data.get("payload"),
            include_images=bool(_get(data, "include_images", "includeImages", default=False)),
            depth=data.get("depth"),
            raw_kind=raw_kind,
        )


@dataclass(frozen=True)
class EdgeSpec:
    """Dependency edge: ``target`` is blocked until ``source`` is done."""

    source: str
    target: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EdgeSpec":
        return cls(source=str(_get(data, "from", "source")), target=str(_get(data, "to", "target")))


@dataclass
class GraphSpec:
    nodes: list[NodeSpec] = field(default_factory=list)
    edges: list[EdgeSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphSpec":
        return cls(
            nodes=[NodeSpec.from_dict(n) for n in (data.get("nodes") or [])],
            edges=[EdgeSpec.from_dict(e) for e in (data.get("edges") or [])],
        )


@dataclass
class TaskSpec:
    goal: str
    type: TaskType = TaskType.AD_HOC
    input: dict[str, Any] = field(default_factory=dict)
    constraints: Constraints = field(default_factory=Constraints)
    override_plan: Plan | None = None
    graph: GraphSpec | None = None
    topic: str | None = None

    @property
    def run_topic(self) -> str:
        """Run-level topic substituted for ``{{topic}}``; falls back to the goal."""
        return self.topic or self.goal or ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskSpec":
        override = _get(data, "override_plan", "overridePlan")
        graph = data.get("graph")
        return cls(
            goal=str(data.get("goal", "")),
            type=TaskType(data.get("type", TaskType.AD_HOC.value)),
            input=dict(data.get("input") or {}),
            constraints=Constraints.from_dict(data.get("constraints")),
            override_plan=Plan.from_dict(override) if override is not None else None,
            graph=GraphSpec.from_dict(graph) if graph is not None else None,
            topic=data.get("topic"),
        )
