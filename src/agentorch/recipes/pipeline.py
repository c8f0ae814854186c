"""Research pipeline recipe — four leaf agents chained through channels."""

from agentorch.core.types import EdgeSpec, GraphSpec, NodeKind, NodeSpec, TaskSpec, TaskType

KB_PROMPT = (
    'List foundational concepts and definitions for topic: "{{topic}}" in bullet points. '
    "Use concise, accurate explanations."
)

OUTLINE_PROMPT = """Using these research notes and definitions, produce a structured outline with sections and brief summaries.

# Research Notes
{{channel:web_researcher.last}}

# Foundations
{{channel:kb_retriever.last}}
"""

EDIT_PROMPT = """Refine the following outline for clarity, cohesion, and correctness. Improve headings and ensure logical flow. Return the improved outline.

{{channel:content_generator.last}}
"""


def research_pipeline_graph() -> GraphSpec:
    """web_researcher + kb_retriever (parallel) → content_generator → editor.

    ``editor`` is declared last, so its output is the run's result.
    """
    nodes = [
        NodeSpec(id="web_researcher", kind=NodeKind.SEARCH, label="Web Researcher", prompt="{{topic}}"),
        NodeSpec(id="kb_retriever", kind=NodeKind.ANSWER, label="KB bullets", prompt=KB_PROMPT),
        NodeSpec(id="content_generator", kind=NodeKind.ANSWER, label="Generate outline", prompt=OUTLINE_PROMPT),
        NodeSpec(id="editor", kind=NodeKind.ANSWER, label="Edit outline", prompt=EDIT_PROMPT),
    ]
    edges = [
        EdgeSpec("web_researcher", "content_generator"),
        EdgeSpec("kb_retriever", "content_generator"),
        EdgeSpec("content_generator", "editor"),
    ]
    return GraphSpec(nodes=nodes, edges=edges)


def research_pipeline(topic: str) -> TaskSpec:
    return TaskSpec(
        goal=f"Research: {topic}",
        type=TaskType.RESEARCH,
        input={"query": topic},
        graph=research_pipeline_graph(),
        topic=topic,
    )
