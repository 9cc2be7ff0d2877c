"""Tests for mapping between the in-memory graph and the flow document."""

import pytest

from flow_core import EdgeRecord, FlowSchema, NodeRecord, Position, SchemaNode, from_schema, to_schema
from flow_core.serialization import (
    dump_document,
    load_document,
    resolve_label,
    resolve_position,
    resolve_start_node_id,
    trim_document,
)
from tests.helpers import flow, schema_node


def make_graph():
    nodes = [
        NodeRecord(id="a", label="Greet", description="Say hi", prompt="Hello!", position=Position(x=10, y=20)),
        NodeRecord(id="b", label="Ask", description="Ask name", prompt="Name?", position=Position(x=30, y=40)),
        NodeRecord(id="c", label="Bye", description="Leave", prompt="Bye", position=Position(x=50, y=60)),
    ]
    edges = [
        EdgeRecord(id="e1", source="a", target="b", condition="greeted", parameters={"tone": "warm"}),
        EdgeRecord(id="e2", source="a", target="c", condition="rude"),
        EdgeRecord(id="e3", source="b", target="c", condition="answered"),
    ]
    return nodes, edges


class TestToSchema:
    """In-memory graph to document."""

    def test_empty_graph(self):
        schema = to_schema([], [], None)
        assert schema.to_json_dict() == {"startNodeId": "", "nodes": []}

    def test_single_node_keeps_fields_and_position(self):
        node = NodeRecord(id="a", label="L", description="D", prompt="P", position=Position(x=1.5, y=-2))
        schema = to_schema([node], [], "a")
        assert schema.to_json_dict() == {
            "startNodeId": "a",
            "nodes": [{
                "id": "a",
                "label": "L",
                "description": "D",
                "prompt": "P",
                "edges": [],
                "position": {"x": 1.5, "y": -2.0},
            }],
        }

    def test_edges_nested_under_source(self):
        nodes, edges = make_graph()
        schema = to_schema(nodes, edges, "a")
        assert [e.to_node_id for e in schema.nodes[0].edges] == ["b", "c"]
        assert [e.to_node_id for e in schema.nodes[1].edges] == ["c"]
        assert schema.nodes[2].edges == []
        assert schema.nodes[0].edges[0].condition == "greeted"
        assert schema.nodes[0].edges[0].parameters == {"tone": "warm"}

    def test_node_order_is_store_order(self):
        nodes, edges = make_graph()
        schema = to_schema(list(reversed(nodes)), edges, "a")
        assert [n.id for n in schema.nodes] == ["c", "b", "a"]

    def test_start_falls_back_to_first_node(self):
        nodes, edges = make_graph()
        assert to_schema(nodes, edges, None).startNodeId == "a"

    def test_explicit_start_wins(self):
        nodes, edges = make_graph()
        assert to_schema(nodes, edges, "b").startNodeId == "b"


class TestFromSchema:
    """Document to in-memory graph."""

    def test_nodes_and_positions(self):
        state = from_schema(flow("A", schema_node("A", label="Start", position=(5, 6))))
        node = state.nodes[0]
        assert node.id == "A"
        assert node.label == "Start"
        assert node.description == "A description"
        assert node.prompt == "A prompt"
        assert node.position == Position(x=5, y=6)

    def test_edges_are_flattened_with_fresh_ids(self):
        state = from_schema(flow("A", schema_node("A", ["B", "C"]), schema_node("B", ["C"]), schema_node("C")))
        assert [(e.source, e.target) for e in state.edges] == [("A", "B"), ("A", "C"), ("B", "C")]
        assert len({e.id for e in state.edges}) == 3
        assert all(e.parameters == {} for e in state.edges)

    def test_start_node_passes_through(self):
        assert from_schema(flow("B", schema_node("A"), schema_node("B"))).start_node_id == "B"

    def test_label_falls_back_to_id(self):
        state = from_schema(flow("A", schema_node("A")))
        assert state.nodes[0].label == "A"

    def test_layout_applied_when_any_position_missing(self):
        calls = []

        def fake_layout(nodes, edges):
            calls.append((len(nodes), len(edges)))
            return [n.model_copy(update={"position": Position(x=i, y=i)}) for i, n in enumerate(nodes)]

        schema = flow("A", schema_node("A", ["B"], position=(100, 100)), schema_node("B", position=None))
        state = from_schema(schema, layout=fake_layout)
        assert calls == [(2, 1)]
        # All-or-nothing: the positioned node is laid out too
        assert [n.position for n in state.nodes] == [Position(x=0, y=0), Position(x=1, y=1)]

    def test_layout_skipped_when_all_positions_present(self):
        def failing_layout(nodes, edges):
            raise AssertionError("layout should not run")

        state = from_schema(flow("A", schema_node("A", position=(7, 8))), layout=failing_layout)
        assert state.nodes[0].position == Position(x=7, y=8)

    def test_default_layout_positions_missing_nodes(self):
        schema = flow("A", schema_node("A", ["B"], position=None), schema_node("B", position=None))
        state = from_schema(schema)
        first, second = state.nodes
        assert second.position.y > first.position.y


class TestRoundTrip:
    """to_schema followed by from_schema."""

    def test_round_trip_preserves_data(self):
        nodes, edges = make_graph()
        state = from_schema(to_schema(nodes, edges, "a"))

        assert len(state.nodes) == len(nodes)
        for expected, restored in zip(nodes, state.nodes):
            assert restored.id == expected.id
            assert restored.label == expected.label
            assert restored.description == expected.description
            assert restored.prompt == expected.prompt
            assert restored.position == expected.position

        assert len(state.edges) == len(edges)
        for expected, restored in zip(edges, state.edges):
            assert (restored.source, restored.target) == (expected.source, expected.target)
            assert restored.condition == expected.condition
            assert restored.parameters == expected.parameters
            assert restored.id != expected.id

        assert state.start_node_id == "a"

    def test_round_trip_through_json(self):
        nodes, edges = make_graph()
        text = to_schema(nodes, edges, "a").model_dump_json()
        state = from_schema(FlowSchema.model_validate_json(text))
        assert [n.label for n in state.nodes] == ["Greet", "Ask", "Bye"]


class TestResolvers:
    """Named default-resolution rules."""

    def test_resolve_start_node_id(self):
        nodes, _ = make_graph()
        assert resolve_start_node_id("b", nodes) == "b"
        assert resolve_start_node_id(None, nodes) == "a"
        assert resolve_start_node_id(None, []) == ""

    def test_resolve_label_and_position(self):
        schema = flow("A", schema_node("A", position=None))
        assert resolve_label(schema.nodes[0]) == "A"
        assert resolve_position(schema.nodes[0]) == Position(x=0, y=0)


class TestRawDocuments:
    """Strict JSON decoding and text trimming ahead of validation."""

    @pytest.mark.parametrize("token", ["NaN", "Infinity", "-Infinity"])
    def test_load_rejects_non_json_constants(self, token):
        with pytest.raises(ValueError, match="Unexpected token"):
            load_document('{"x": %s}' % token)

    def test_load_reports_deep_nesting_as_value_error(self):
        with pytest.raises(ValueError, match="nested too deeply"):
            load_document("[" * 200000)

    def test_dump_refuses_non_finite_numbers(self):
        node = SchemaNode.model_construct(
            id="A", label="A", description="d", prompt="p", edges=[],
            position=Position.model_construct(x=float("nan"), y=0.0),
        )
        with pytest.raises(ValueError):
            dump_document(FlowSchema.model_construct(startNodeId="A", nodes=[node]))

    def test_trim_document(self):
        raw = {
            "startNodeId": " A ",
            "nodes": [{
                "id": "A ",
                "label": "  Greeting",
                "description": "d\n",
                "prompt": "\tp",
                "edges": [{"to_node_id": " A", "condition": " again ", "parameters": {"k": " v "}}],
            }],
        }
        trimmed = trim_document(raw)
        assert trimmed == {
            "startNodeId": "A",
            "nodes": [{
                "id": "A",
                "label": "Greeting",
                "description": "d",
                "prompt": "p",
                "edges": [{"to_node_id": "A", "condition": "again", "parameters": {"k": " v "}}],
            }],
        }
        # Input is left untouched
        assert raw["nodes"][0]["id"] == "A "

    def test_trim_leaves_malformed_parts_alone(self):
        assert trim_document(["x"]) == ["x"]
        assert trim_document({"startNodeId": 3, "nodes": "none"}) == {"startNodeId": 3, "nodes": "none"}
        assert trim_document({"startNodeId": "A", "nodes": [7, {"id": 1, "edges": "x"}]}) == {
            "startNodeId": "A",
            "nodes": [7, {"id": 1, "edges": "x"}],
        }
