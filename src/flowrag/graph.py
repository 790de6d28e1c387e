"""Graph store interface and the in-memory host implementation.

The stage graph is owned by the host. flowrag reads nodes and edges and
writes only per-node payload data through ``patch_node_data``; it never
adds or removes nodes or edges itself.
"""

from __future__ import annotations

import logging
import tomllib
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from flowrag.exceptions import GraphError
from flowrag.types import Edge, Node, StageKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

__all__ = ["GraphStore", "InMemoryGraph", "load_graph"]

logger = logging.getLogger(__name__)


class GraphStore(ABC):
    """Read access to the stage graph plus per-node payload writes."""

    @abstractmethod
    def list_nodes(self) -> list[Node]:
        """Return all nodes."""

    @abstractmethod
    def list_edges(self) -> list[Edge]:
        """Return all edges, in insertion order."""

    @abstractmethod
    def patch_node_data(self, node_id: str, patch: Mapping[str, Any]) -> Node:
        """Merge ``patch`` into a node's data and return the updated node.

        Raises:
            GraphError: If the node does not exist.
        """

    def get_node(self, node_id: str) -> Node | None:
        """Return the node with the given id, or ``None``."""
        for node in self.list_nodes():
            if node.id == node_id:
                return node
        return None

    def inbound_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.list_edges() if e.target == node_id]

    def outbound_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.list_edges() if e.source == node_id]


class InMemoryGraph(GraphStore):
    """Dict-backed graph store used by the CLI host and the tests.

    Topology changes (``add_node``, ``add_edge``, ``remove_node``) are host
    operations; stages only ever call ``patch_node_data``.
    """

    def __init__(
        self,
        nodes: Iterable[Node] = (),
        edges: Iterable[Edge] = (),
    ) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    def list_nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def list_edges(self) -> list[Edge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def patch_node_data(self, node_id: str, patch: Mapping[str, Any]) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise GraphError(f"Unknown node: {node_id!r}")
        updated = replace(node, data={**node.data, **patch})
        self._nodes[node_id] = updated
        logger.debug("Patched node %s: %s", node_id, sorted(patch))
        return updated

    def add_node(self, node: Node) -> None:
        if node.id in self._nodes:
            raise GraphError(f"Duplicate node id: {node.id!r}")
        self._nodes[node.id] = node

    def add_edge(self, edge: Edge) -> None:
        for end in (edge.source, edge.target):
            if end not in self._nodes:
                raise GraphError(f"Edge references unknown node: {end!r}")
        if edge.source == edge.target:
            raise GraphError(f"Self-loop on node {edge.source!r}")
        if self._reaches(edge.target, edge.source):
            raise GraphError(f"Edge {edge.source!r} → {edge.target!r} would create a cycle")
        self._edges.append(edge)

    def _reaches(self, start: str, goal: str) -> bool:
        """Whether ``goal`` is reachable from ``start`` along existing edges."""
        seen: set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(e.target for e in self._edges if e.source == current)
        return False

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it."""
        self._nodes.pop(node_id, None)
        self._edges = [e for e in self._edges if node_id not in (e.source, e.target)]


def load_graph(path: Path) -> InMemoryGraph:
    """Build an in-memory graph from a TOML pipeline definition.

    Expected layout::

        [[stages]]
        id = "repo"
        kind = "source-fetch"
        data = { source = "https://github.com/octo/demo", ref = "main" }

        [[edges]]
        source = "repo"
        target = "parse"

    Raises:
        GraphError: If the file cannot be read or describes an invalid graph.
    """
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise GraphError(f"Failed to load pipeline definition {path}: {e}") from e

    known_kinds = {k.value for k in StageKind}
    graph = InMemoryGraph()
    for entry in raw.get("stages", []):
        try:
            stage_id, kind = str(entry["id"]), str(entry["kind"])
        except KeyError as e:
            raise GraphError(f"Stage entry missing {e} in {path}") from e
        if kind not in known_kinds:
            raise GraphError(f"Unknown stage kind {kind!r} for stage {stage_id!r}")
        graph.add_node(Node(id=stage_id, kind=kind, data=entry.get("data", {})))

    for entry in raw.get("edges", []):
        try:
            edge = Edge(
                source=str(entry["source"]),
                target=str(entry["target"]),
                source_port=str(entry.get("source_port", "")),
                target_port=str(entry.get("target_port", "")),
            )
        except KeyError as e:
            raise GraphError(f"Edge entry missing {e} in {path}") from e
        graph.add_edge(edge)

    logger.info(
        "Loaded pipeline %s: %d stages, %d edges",
        path,
        len(graph.list_nodes()),
        len(graph.list_edges()),
    )
    return graph
