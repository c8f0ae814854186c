"""Placeholder templates — prompts that reference other nodes' outputs.

A template is parsed once into a sequence of segments:

- ``Literal``: plain text, copied verbatim;
- ``ChannelRef``: ``{{channel:<node_id>.last}}`` (the ``.last`` suffix is optional),
  the latest output of another node;
- ``TopicRef``: ``{{topic}}``, the run-level topic.

Any other ``{{...}}`` sequence is malformed and kept as literal text.
A channel with no output yet renders as an empty string; ordering is the
caller's job, expressed through graph edges.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

OPEN = "{{"
CLOSE = "}}"
CHANNEL_PREFIX = "channel:"
LAST_SUFFIX = ".last"
TOPIC = "topic"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class ChannelRef:
    node_id: str


@dataclass(frozen=True)
class TopicRef:
    pass


Segment = Literal | ChannelRef | TopicRef


def _parse_reference(body: str) -> ChannelRef | TopicRef | None:
    body = body.strip()
    if body == TOPIC:
        return TopicRef()
    if body.startswith(CHANNEL_PREFIX):
        node_id = body[len(CHANNEL_PREFIX) :]
        if node_id.endswith(LAST_SUFFIX):
            node_id = node_id[: -len(LAST_SUFFIX)]
        if node_id and "{" not in node_id and "}" not in node_id:
            return ChannelRef(node_id)
    return None


def _latest(channels: Mapping[str, Sequence[str]], node_id: str) -> str:
    values = channels.get(node_id) or ()
    return values[-1] if values else ""


@dataclass(frozen=True)
class Template:
    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, text: str | None) -> "Template":
        segments: list[Segment] = []
        buf: list[str] = []
        pos = 0
        text = text or ""

        while pos < len(text):
            start = text.find(OPEN, pos)
            if start == -1:
                buf.append(text[pos:])
                break
            end = text.find(CLOSE, start + len(OPEN))
            if end == -1:
                buf.append(text[pos:])
                break
            ref = _parse_reference(text[start + len(OPEN) : end])
            if ref is None:
                # Malformed: keep the opening braces and rescan after them.
                buf.append(text[pos : start + len(OPEN)])
                pos = start + len(OPEN)
                continue
            buf.append(text[pos:start])
            if buf and "".join(buf):
                segments.append(Literal("".join(buf)))
            buf = []
            segments.append(ref)
            pos = end + len(CLOSE)

        if "".join(buf):
            segments.append(Literal("".join(buf)))
        return cls(tuple(segments))

    @property
    def references(self) -> list[str]:
        """Node ids referenced through channel placeholders, in order."""
        return [s.node_id for s in self.segments if isinstance(s, ChannelRef)]

    def render(self, channels: Mapping[str, Sequence[str]], topic: str) -> str:
        parts: list[str] = []
        for seg in self.segments:
            if isinstance(seg, Literal):
                parts.append(seg.text)
            elif isinstance(seg, ChannelRef):
                parts.append(_latest(channels, seg.node_id))
            else:
                parts.append(topic)
        return "".join(parts)


def resolve(text: str | None, channels: Mapping[str, Sequence[str]], topic: str) -> str:
    return Template.parse(text).render(channels, topic)


def resolve_payload(payload: Any, channels: Mapping[str, Sequence[str]], topic: str) -> Any:
    """Resolve placeholders in a string payload or in every string leaf of a JSON-like object."""
    if isinstance(payload, str):
        return resolve(payload, channels, topic)
    if isinstance(payload, Mapping):
        return {k: resolve_payload(v, channels, topic) for k, v in payload.items()}
    if isinstance(payload, list | tuple):
        return [resolve_payload(v, channels, topic) for v in payload]
    return payload
