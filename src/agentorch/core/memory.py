"""Memory — per-run artifact store written by tools."""

import json
from typing import Any


class Memory:
    """Ordered key-value store of documents produced during a run.

    Tools write with ``put_doc()`` and read with ``get_doc()``.
    Each graph node gets its own instance, so keys never collide across nodes.
    Insertion order is kept; re-writing a key moves it to the end so that
    ``latest()`` always reflects the most recent write.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._docs: dict[str, Any] = dict(initial) if initial else {}

    def put_doc(self, key: str, value: Any) -> None:
        self._docs.pop(key, None)
        self._docs[key] = value

    def get_doc(self, key: str, default: Any = None) -> Any:
        return self._docs.get(key, default)

    def latest(self, prefix: str = "") -> tuple[str, Any] | None:
        """Return the most recently written ``(key, value)``, optionally filtered by key prefix."""
        for key in reversed(self._docs):
            if key.startswith(prefix):
                return key, self._docs[key]
        return None

    def latest_json(self, prefix: str) -> dict[str, Any]:
        """Decode the latest document under ``prefix`` as a JSON object.

        Returns an empty dict when nothing matches or the value is not a JSON object.
        """
        found = self.latest(prefix)
        if found is None:
            return {}
        value = found[1]
        if isinstance(value, dict):
            return value
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def docs_snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of all documents."""
        return dict(self._docs)

    def __contains__(self, key: str) -> bool:
        return key in self._docs

    def __len__(self) -> int:
        return len(self._docs)

    def __repr__(self) -> str:
        return f"Memory(keys={list(self._docs)!r})"
