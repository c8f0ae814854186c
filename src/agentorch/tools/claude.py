"""ClaudeTools — Anthropic SDK-backed search, answer, summarize and structured tools."""

import json
import logging
import time
from typing import Any

import anthropic

from agentorch.core.tools import Tool, ToolContext, ToolKind

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MAX_TOKENS = 4096
ANSWER_SYSTEM = "You are a helpful assistant. Use provided context when relevant."
SEARCH_SYSTEM = (
    "You are a research assistant. Report the key findings for the query as concise bullet "
    "points, with figures, dates and named sources where you know them."
)
CODE_SYSTEM = (
    "You write a single self-contained Python 3 script that solves the task and prints "
    "its result to stdout. Reply with the code only, no prose and no markdown fences."
)
CONTEXT_DOC_LIMIT = 5
CONTEXT_PREVIEW_CHARS = 2000


def _text(response: Any) -> str:
    return "".join(getattr(block, "text", "") for block in response.content or [] if block.type == "text")


def _strip_fences(code: str) -> str:
    lines = code.strip().splitlines()
    if lines and lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)


class ClaudeTools:
    """Run tool calls through the Anthropic Messages API.

    Uses ``AsyncAnthropic`` with lazy client initialization; the API key comes
    from ``ANTHROPIC_API_KEY``. Every call writes its output and a ``usage_*``
    JSON document to the caller's memory, which the orchestrator turns into
    per-node token metrics.

    ``ctx.data``, when given, may expose ``search_documents(query)`` and
    ``get_document(doc_id)`` coroutines; their results are prepended to the
    prompt as context.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic()
        return self._client

    def registry(self) -> dict[str, Tool]:
        return {
            ToolKind.SEARCH.value: self.search,
            ToolKind.ANSWER.value: self.answer,
            ToolKind.SUMMARIZE.value: self.summarize,
            ToolKind.STRUCTURED.value: self.structured,
        }

    async def _create(self, ctx: ToolContext, tool: str, **kwargs: Any) -> Any:
        start = time.monotonic()
        response = await self._get_client().messages.create(
            model=self.model, max_tokens=self.max_tokens, **kwargs
        )
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        usage = response.usage
        input_tokens = usage.input_tokens
        output_tokens = usage.output_tokens
        record = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "elapsed_ms": elapsed_ms,
        }
        ctx.memory.put_doc(f"usage_{time.time_ns()}", json.dumps(record))
        ctx.trace.info("tool.usage", tool=tool, model=response.model, **record)
        return response

    async def _gather_context(self, ctx: ToolContext, query: str, doc_id: str | None) -> str:
        store = ctx.data
        if store is None:
            return ""
        parts: list[str] = []

        search = getattr(store, "search_documents", None)
        if query and callable(search):
            try:
                docs = await search(query)
            except Exception as e:
                logger.warning("Context search failed: %s", e)
                ctx.trace.warn("claude.context.search_failed", message=str(e))
            else:
                titles = "\n".join(f"- {d.get('title') or d.get('id')}" for d in docs[:CONTEXT_DOC_LIMIT])
                if titles:
                    parts.append(f"# Matching Docs\n{titles}")

        get_document = getattr(store, "get_document", None)
        if doc_id and callable(get_document):
            try:
                doc = await get_document(doc_id)
            except Exception as e:
                logger.warning("Context document %s failed: %s", doc_id, e)
                ctx.trace.warn("claude.context.doc_failed", doc_id=doc_id, message=str(e))
            else:
                if doc:
                    preview = str(doc.get("content") or "")[:CONTEXT_PREVIEW_CHARS]
                    parts.append(f"# Active Document: {doc.get('title') or doc_id}\n{preview}")

        return "\n\n---\n\n".join(parts)

    async def search(self, args: dict[str, Any], ctx: ToolContext) -> str:
        """Model-backed research notes for 'query'; stands in for a web search provider."""
        query = str(args.get("query") or "")
        response = await self._create(
            ctx,
            ToolKind.SEARCH.value,
            system=SEARCH_SYSTEM,
            messages=[{"role": "user", "content": query}],
        )
        notes = _text(response)
        ctx.memory.put_doc(f"search_{time.time_ns()}", notes)
        return notes

    async def answer(self, args: dict[str, Any], ctx: ToolContext) -> str:
        query = str(args.get("query") or args.get("goal") or "")
        context_text = await self._gather_context(ctx, query, args.get("doc_id"))
        text = "\n\n".join(p for p in (context_text and f"# Context\n{context_text}", f"# Question\n{query}") if p)

        image_urls = [str(u) for u in args.get("image_urls") or []]
        content: Any = text
        if image_urls:
            content = [{"type": "text", "text": text}] + [
                {"type": "image", "source": {"type": "url", "url": url}} for url in image_urls
            ]

        response = await self._create(
            ctx,
            ToolKind.ANSWER.value,
            system=ANSWER_SYSTEM,
            messages=[{"role": "user", "content": content}],
        )
        output = _text(response)
        ctx.memory.put_doc(f"answer_{time.time_ns()}", output)
        return output

    async def summarize(self, args: dict[str, Any], ctx: ToolContext) -> str:
        text = str(args.get("text") or "")
        sentences = int(args.get("sentences") or 2)
        if not text and args.get("doc_id") and ctx.data is not None:
            get_document = getattr(ctx.data, "get_document", None)
            if callable(get_document):
                doc = await get_document(str(args["doc_id"]))
                text = str((doc or {}).get("content") or "")
        if not text:
            fetched = ctx.memory.latest("fetch_")
            text = str(fetched[1]) if fetched else ""

        response = await self._create(
            ctx,
            ToolKind.SUMMARIZE.value,
            messages=[
                {
                    "role": "user",
                    "content": f"Summarize the following text in {sentences} sentence(s).\n\n{text}",
                }
            ],
        )
        summary = _text(response)
        ctx.memory.put_doc(f"summary_{time.time_ns()}", summary)
        return summary

    async def structured(self, args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
        """Force a single tool-use block whose input matches ``args['schema']``."""
        name = str(args.get("name") or "structured_output")
        schema = args.get("schema") or {"type": "object", "additionalProperties": True}
        response = await self._create(
            ctx,
            ToolKind.STRUCTURED.value,
            messages=[{"role": "user", "content": str(args.get("prompt") or "")}],
            tools=[
                {
                    "name": name,
                    "description": str(args.get("description") or "Return structured output"),
                    "input_schema": schema,
                }
            ],
            tool_choice={"type": "tool", "name": name},
        )
        for block in response.content or []:
            if block.type == "tool_use":
                output = dict(block.input)
                ctx.memory.put_doc(f"structured_{time.time_ns()}", json.dumps(output))
                return output
        raise ValueError(f"Model returned no {name!r} tool call")

    async def write_code(self, prompt: str, ctx: ToolContext) -> str:
        response = await self._create(
            ctx,
            ToolKind.CODE_EXEC.value,
            system=CODE_SYSTEM,
            messages=[{"role": "user", "content": prompt}],
        )
        return _strip_fences(_text(response))
