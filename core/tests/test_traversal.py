"""Tests for deterministic execution order (canvas DFS and branch Kahn)."""

from __future__ import annotations

import random

import pytest

from flows.errors import GraphStructureError
from flows.graph.model import build_graph
from flows.graph.traversal import (
    CYCLE_MESSAGE,
    TraversalStrategy,
    assert_topological,
    branch_kahn_order,
    compute_branch_ordered_execution_auto,
    compute_execution_order,
    topo_path_by_canvas,
)


def make_graph(positions: dict, edges: list[tuple[str, str]], **meta):
    nodes = []
    for node_id, position in positions.items():
        data = {"_id": node_id}
        if position is not None:
            data["position"] = {"x": position[0], "y": position[1]}
        data.update(meta.get(node_id, {}))
        nodes.append(data)
    return build_graph(
        nodes, [{"sourceNodeId": source, "targetNodeId": target} for source, target in edges]
    )


# ---------------------------------------------------------------------------
# topo_path_by_canvas
# ---------------------------------------------------------------------------


class TestTopoPathByCanvas:
    def test_empty_graph(self):
        assert topo_path_by_canvas(build_graph([], [])) == []

    def test_linear_chain(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (0, 200)},
            [("A", "B"), ("B", "C")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "C"]

    def test_single_fork_drains_top_branch_first(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (0, 200), "D": (100, 100), "E": (100, 200)},
            [("A", "B"), ("A", "C"), ("B", "D"), ("C", "E")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "D", "C", "E"]

    def test_nested_forks(self):
        graph = make_graph(
            {
                "A": (0, 0),
                "B": (0, 100),
                "C": (300, 100),
                "D": (0, 200),
                "E": (100, 200),
                "F": (300, 300),
            },
            [("A", "B"), ("A", "C"), ("B", "D"), ("B", "E"), ("C", "F")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "D", "E", "C", "F"]

    def test_cross_branch_join_waits_for_both_parents(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "X": (200, 100), "C": (100, 200)},
            [("A", "B"), ("A", "X"), ("B", "C"), ("X", "C")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "X", "C"]

    def test_disconnected_components_topmost_first(self):
        graph = make_graph(
            {"C": (0, 300), "D": (0, 400), "A": (0, 0), "B": (0, 100)},
            [("C", "D"), ("A", "B")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "C", "D"]

    def test_equal_positions_break_ties_by_id(self):
        graph = make_graph(
            {"Beta": (0, 0), "Alpha": (0, 0), "D1": (0, 100), "C1": (0, 100)},
            [("Beta", "D1"), ("Alpha", "C1")],
        )
        assert topo_path_by_canvas(graph) == ["Alpha", "C1", "Beta", "D1"]

    def test_missing_positions_default_to_origin(self):
        graph = make_graph({"node-2": None, "node-1": None}, [])
        assert topo_path_by_canvas(graph) == ["node-1", "node-2"]

    def test_cycle_is_fatal(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (0, 200)},
            [("A", "B"), ("B", "C"), ("C", "B")],
        )
        with pytest.raises(GraphStructureError, match=CYCLE_MESSAGE):
            topo_path_by_canvas(graph)

    def test_fork_entry_refreshed_after_child_consumed(self):
        # The A fork is re-read once the B leg is drained and still offers C.
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (200, 100), "D": (0, 200), "E": (0, 300)},
            [("A", "B"), ("A", "C"), ("B", "D"), ("D", "E")],
        )
        assert topo_path_by_canvas(graph) == ["A", "B", "D", "E", "C"]

    def test_random_dags_are_topological(self):
        rng = random.Random(42)
        for _ in range(50):
            size = rng.randint(1, 12)
            ids = [f"n{i}" for i in range(size)]
            positions = {i: (rng.randint(0, 3) * 100, rng.randint(0, 3) * 100) for i in ids}
            edges = [
                (ids[a], ids[b])
                for a in range(size)
                for b in range(a + 1, size)
                if rng.random() < 0.3
            ]
            graph = make_graph(positions, edges)
            assert_topological(topo_path_by_canvas(graph), graph)


# ---------------------------------------------------------------------------
# branch_kahn_order
# ---------------------------------------------------------------------------


class TestBranchKahnOrder:
    def test_linear_chain(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (0, 200)},
            [("A", "B"), ("B", "C")],
        )
        assert branch_kahn_order(graph) == ["A", "B", "C"]

    def test_drains_one_branch_segment_before_switching(self):
        meta = {
            "T": {"branchScopeId": "S", "branchKey": "if"},
            "T2": {"branchScopeId": "S", "branchKey": "if"},
            "F": {"branchScopeId": "S", "branchKey": "else"},
            "F2": {"branchScopeId": "S", "branchKey": "else"},
        }
        graph = make_graph(
            {
                "S": (0, 0),
                "T": (0, 100),
                "F": (200, 100),
                "T2": (0, 200),
                "F2": (200, 200),
            },
            [("S", "T"), ("S", "F"), ("T", "T2"), ("F", "F2")],
            **meta,
        )
        assert branch_kahn_order(graph) == ["S", "T", "T2", "F", "F2"]

    def test_unscoped_nodes_follow_canvas_order(self):
        graph = make_graph(
            {"A": (0, 0), "B": (0, 100), "C": (0, 200), "D": (100, 100), "E": (100, 200)},
            [("A", "B"), ("A", "C"), ("B", "D"), ("C", "E")],
        )
        # One segment: plain Kahn in canvas order
        assert branch_kahn_order(graph) == ["A", "B", "D", "C", "E"]

    def test_cycle_is_fatal(self):
        graph = make_graph({"A": (0, 0), "B": (0, 1)}, [("A", "B"), ("B", "A")])
        with pytest.raises(GraphStructureError, match=CYCLE_MESSAGE):
            branch_kahn_order(graph)


# ---------------------------------------------------------------------------
# Strategy selection and the auto wrapper
# ---------------------------------------------------------------------------


class TestComputeExecutionOrder:
    def test_strategy_by_name(self):
        graph = make_graph({"A": (0, 0), "B": (0, 1)}, [("A", "B")])
        assert compute_execution_order(graph, "branch_kahn") == ["A", "B"]
        assert compute_execution_order(graph, TraversalStrategy.CANVAS_DFS) == ["A", "B"]

    def test_unknown_strategy_rejected(self):
        graph = make_graph({"A": (0, 0)}, [])
        with pytest.raises(ValueError):
            compute_execution_order(graph, "random")

    def test_auto_filters_isolated_nodes(self):
        snapshot = {
            "nodes": [
                {"_id": "A", "position": {"x": 0, "y": 0}},
                {"_id": "B", "position": {"x": 0, "y": 100}},
                {"_id": "lonely", "position": {"x": 0, "y": 50}},
            ],
            "edges": [{"sourceNodeId": "A", "targetNodeId": "B"}],
        }
        assert compute_branch_ordered_execution_auto(snapshot) == ["A", "B"]

    def test_auto_with_no_edges_is_empty(self):
        snapshot = {"nodes": [{"_id": "A"}, {"_id": "B"}], "edges": []}
        assert compute_branch_ordered_execution_auto(snapshot) == []


class TestAssertTopological:
    def test_rejects_edge_violation(self):
        graph = make_graph({"A": (0, 0), "B": (0, 1)}, [("A", "B")])
        with pytest.raises(GraphStructureError):
            assert_topological(["B", "A"], graph)

    def test_rejects_non_permutation(self):
        graph = make_graph({"A": (0, 0), "B": (0, 1)}, [("A", "B")])
        with pytest.raises(GraphStructureError):
            assert_topological(["A"], graph)
