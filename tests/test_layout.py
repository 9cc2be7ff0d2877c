"""Tests for the layered auto-layout."""

from flow_core import EdgeRecord, NodeRecord, Position, auto_layout
from flow_core.layout import assign_ranks


def nodes_for(*ids, **sizes):
    return [NodeRecord(id=i, label=i.upper(), **sizes) for i in ids]


def edge(source, target):
    return EdgeRecord(source=source, target=target)


class TestAssignRanks:
    def test_chain(self):
        ranks = assign_ranks(nodes_for("a", "b", "c"), [edge("a", "b"), edge("b", "c")])
        assert ranks == {"a": 0, "b": 1, "c": 2}

    def test_full_cycle_roots_at_first_node(self):
        ranks = assign_ranks(nodes_for("a", "b"), [edge("a", "b"), edge("b", "a")])
        assert ranks == {"a": 0, "b": 1}

    def test_self_loop_keeps_node_a_root(self):
        ranks = assign_ranks(nodes_for("a", "b"), [edge("a", "a"), edge("a", "b")])
        assert ranks == {"a": 0, "b": 1}


class TestAutoLayout:
    def test_empty(self):
        assert auto_layout([], []) == []

    def test_only_positions_change(self):
        nodes = [NodeRecord(id="a", label="A", description="d", prompt="p", position=Position(x=999, y=999))]
        laid_out = auto_layout(nodes, [])
        assert laid_out[0].model_dump(exclude={"position"}) == nodes[0].model_dump(exclude={"position"})
        assert laid_out[0].position == Position(x=0, y=0)
        # Input is left untouched
        assert nodes[0].position == Position(x=999, y=999)

    def test_top_to_bottom_layers(self):
        laid_out = auto_layout(nodes_for("a", "b", "c"), [edge("a", "b"), edge("a", "c")])
        a, b, c = laid_out
        # Default node size 200x80, separations 50 (nodes) and 80 (ranks)
        assert a.position.y == 0
        assert b.position.y == c.position.y == 160
        assert c.position.x - b.position.x == 250
        # The single-node layer is centred over the wider one
        assert a.position.x == 125

    def test_left_to_right(self):
        a, b = auto_layout(nodes_for("a", "b"), [edge("a", "b")], direction="LR")
        assert a.position == Position(x=0, y=0)
        assert b.position == Position(x=280, y=0)

    def test_measured_sizes_are_used(self):
        a, b = auto_layout(nodes_for("a", "b", width=100.0, height=40.0), [edge("a", "b")])
        assert b.position.y == 120

    def test_deterministic(self):
        nodes = nodes_for("a", "b", "c", "d")
        edges = [edge("a", "b"), edge("c", "d")]
        first = [n.position for n in auto_layout(nodes, edges)]
        second = [n.position for n in auto_layout(nodes, edges)]
        assert first == second
