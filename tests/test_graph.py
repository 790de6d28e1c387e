"""Tests for flowrag.graph — in-memory graph store and pipeline definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from flowrag.exceptions import GraphError
from flowrag.graph import InMemoryGraph, load_graph
from flowrag.types import Edge, Node

if TYPE_CHECKING:
    from pathlib import Path


def _graph() -> InMemoryGraph:
    return InMemoryGraph(
        nodes=[Node("a", "text"), Node("b", "chunk"), Node("c", "chunk")],
        edges=[Edge("a", "b"), Edge("a", "c")],
    )


class TestInMemoryGraph:
    def test_lists_nodes_and_edges(self):
        graph = _graph()
        assert [n.id for n in graph.list_nodes()] == ["a", "b", "c"]
        assert graph.list_edges() == [Edge("a", "b"), Edge("a", "c")]

    def test_inbound_and_outbound(self):
        graph = _graph()
        assert graph.outbound_edges("a") == [Edge("a", "b"), Edge("a", "c")]
        assert graph.inbound_edges("b") == [Edge("a", "b")]
        assert graph.inbound_edges("a") == []

    def test_get_node_missing_returns_none(self):
        assert _graph().get_node("zzz") is None

    def test_patch_merges_data(self):
        graph = InMemoryGraph(nodes=[Node("a", "text", {"text": "hi", "status": "idle"})])
        updated = graph.patch_node_data("a", {"status": "running"})
        assert dict(updated.data) == {"text": "hi", "status": "running"}
        assert graph.get_node("a") == updated

    def test_patch_unknown_node_raises(self):
        with pytest.raises(GraphError, match="Unknown node"):
            _graph().patch_node_data("zzz", {"x": 1})

    def test_node_data_is_read_only(self):
        node = Node("a", "text", {"text": "hi"})
        with pytest.raises(TypeError):
            node.data["text"] = "changed"  # type: ignore[index]

    def test_duplicate_node_raises(self):
        graph = _graph()
        with pytest.raises(GraphError, match="Duplicate"):
            graph.add_node(Node("a", "text"))

    def test_edge_to_unknown_node_raises(self):
        graph = _graph()
        with pytest.raises(GraphError, match="unknown node"):
            graph.add_edge(Edge("a", "zzz"))

    def test_self_loop_raises(self):
        graph = _graph()
        with pytest.raises(GraphError, match="Self-loop"):
            graph.add_edge(Edge("b", "b"))

    def test_cycle_raises(self):
        graph = _graph()
        graph.add_edge(Edge("b", "c"))
        with pytest.raises(GraphError, match="cycle"):
            graph.add_edge(Edge("c", "a"))
        assert Edge("c", "a") not in graph.list_edges()

    def test_diamond_is_not_a_cycle(self):
        graph = _graph()
        graph.add_edge(Edge("b", "c"))
        assert graph.list_edges()[-1] == Edge("b", "c")

    def test_remove_node_drops_edges(self):
        graph = _graph()
        graph.remove_node("b")
        assert graph.get_node("b") is None
        assert graph.list_edges() == [Edge("a", "c")]


class TestLoadGraph:
    def test_loads_stages_and_edges(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text(
            """
[[stages]]
id = "notes"
kind = "text"
data = { text = "alpha beta" }

[[stages]]
id = "split"
kind = "chunk"

[[edges]]
source = "notes"
target = "split"
""",
            encoding="utf-8",
        )
        graph = load_graph(path)
        assert graph.get_node("notes").data["text"] == "alpha beta"
        assert graph.get_node("split").kind == "chunk"
        assert graph.list_edges() == [Edge("notes", "split")]

    def test_unknown_kind_raises(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text('[[stages]]\nid = "x"\nkind = "teleport"\n', encoding="utf-8")
        with pytest.raises(GraphError, match="Unknown stage kind"):
            load_graph(path)

    def test_missing_id_raises(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text('[[stages]]\nkind = "text"\n', encoding="utf-8")
        with pytest.raises(GraphError, match="missing"):
            load_graph(path)

    def test_dangling_edge_raises(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text(
            '[[stages]]\nid = "x"\nkind = "text"\n\n[[edges]]\nsource = "x"\ntarget = "y"\n',
            encoding="utf-8",
        )
        with pytest.raises(GraphError):
            load_graph(path)

    def test_cyclic_pipeline_raises(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text(
            '[[stages]]\nid = "a"\nkind = "manual-execute"\n\n'
            '[[stages]]\nid = "b"\nkind = "manual-execute"\n\n'
            '[[edges]]\nsource = "a"\ntarget = "b"\n\n'
            '[[edges]]\nsource = "b"\ntarget = "a"\n',
            encoding="utf-8",
        )
        with pytest.raises(GraphError, match="cycle"):
            load_graph(path)

    def test_invalid_toml_raises(self, tmp_path: Path):
        path = tmp_path / "pipeline.toml"
        path.write_text("[[stages]\n", encoding="utf-8")
        with pytest.raises(GraphError, match="Failed to load"):
            load_graph(path)

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(GraphError):
            load_graph(tmp_path / "nope.toml")
