"""TaskGraph — id-indexed node arena with an adjacency and in-degree table."""

from collections import deque
from typing import Self

from agentorch.core.types import EdgeSpec, GraphSpec, NodeSpec


class TaskGraph:
    """Mutable dependency graph of node specs.

    Nodes live in an id → spec arena (declaration order preserved); edges live
    in a separate successor table, so the graph can grow while it is being
    scheduled. ``add_edge(source, target)`` means *source must complete
    before target starts*.

    ``in_degree`` counts the incoming edges whose source has not been
    finalized yet. Once ``finalize(node_id)`` is called, the node's successors
    are released and later edges out of it are satisfied on insertion.

    Cycles are not rejected: nodes on a cycle simply never reach in-degree 0.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, NodeSpec] = {}
        self._successors: dict[str, list[str]] = {}
        self._in_degree: dict[str, int] = {}
        self._finalized: set[str] = set()

    @classmethod
    def from_spec(cls, spec: GraphSpec) -> "TaskGraph":
        return cls().add_all(spec.nodes, spec.edges)

    def add_node(self, node: NodeSpec) -> bool:
        """Insert ``node``; a colliding id is a no-op (existing node wins)."""
        if node.id in self._nodes:
            return False
        self._nodes[node.id] = node
        self._successors[node.id] = []
        self._in_degree[node.id] = 0
        return True

    def add_edge(self, source: str, target: str) -> bool:
        """Insert an edge; dropped (``False``) unless both endpoints exist."""
        if source not in self._nodes or target not in self._nodes:
            return False
        self._successors[source].append(target)
        if source not in self._finalized:
            self._in_degree[target] += 1
        return True

    def finalize(self, node_id: str) -> list[str]:
        """Mark ``node_id`` complete and release its successors.

        Returns the successors whose in-degree dropped to zero.
        """
        if node_id in self._finalized:
            return []
        self._finalized.add(node_id)
        released: list[str] = []
        for succ in self._successors.get(node_id, []):
            self._in_degree[succ] -= 1
            if self._in_degree[succ] == 0:
                released.append(succ)
        return released

    def get_node(self, node_id: str) -> NodeSpec:
        return self._nodes[node_id]

    def in_degree(self, node_id: str) -> int:
        return self._in_degree[node_id]

    def successors(self, node_id: str) -> list[str]:
        return list(self._successors.get(node_id, []))

    def predecessors(self, node_id: str) -> set[str]:
        return {src for src, succs in self._successors.items() if node_id in succs}

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def edges(self) -> list[EdgeSpec]:
        return [EdgeSpec(src, dst) for src, succs in self._successors.items() for dst in succs]

    @property
    def roots(self) -> list[str]:
        return [nid for nid, deg in self._in_degree.items() if deg == 0 and nid not in self._finalized]

    def preview_waves(self) -> tuple[list[list[str]], list[str]]:
        """Kahn's algorithm over the static graph, without running anything.

        Returns ``(waves, stalled)`` where ``stalled`` lists the nodes that would
        never become ready (cycle members and their descendants).
        """
        in_degree = {nid: 0 for nid in self._nodes}
        for succs in self._successors.values():
            for succ in succs:
                in_degree[succ] += 1
        queue: deque[str] = deque(nid for nid, deg in in_degree.items() if deg == 0)
        waves: list[list[str]] = []
        visited: set[str] = set()

        while queue:
            wave: list[str] = []
            for _ in range(len(queue)):
                nid = queue.popleft()
                wave.append(nid)
                visited.add(nid)
                for succ in self._successors[nid]:
                    in_degree[succ] -= 1
                    if in_degree[succ] == 0:
                        queue.append(succ)
            waves.append(wave)

        stalled = [nid for nid in self._nodes if nid not in visited]
        return waves, stalled

    def add_all(self, nodes: list[NodeSpec], edges: list[EdgeSpec]) -> Self:
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge.source, edge.target)
        return self

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"TaskGraph(nodes={len(self._nodes)}, edges={sum(len(s) for s in self._successors.values())})"
