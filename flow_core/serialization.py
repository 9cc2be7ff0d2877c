"""
Mapping between the in-memory graph and the persisted flow document.

to_schema nests each edge under its source node; from_schema flattens them
back out with fresh edge ids. The fallback rules for optional document
fields are spelled out as named resolver functions below.
"""

import json
from typing import Any, Callable, Iterable, Optional, Sequence

from .layout import auto_layout
from .models import (
    EdgeRecord,
    FlowSchema,
    GraphState,
    NodeRecord,
    Position,
    SchemaEdge,
    SchemaNode,
    generate_edge_id,
)

LayoutFn = Callable[[list[NodeRecord], list[EdgeRecord]], list[NodeRecord]]

TRIMMED_NODE_FIELDS = ("id", "label", "description", "prompt")
TRIMMED_EDGE_FIELDS = ("to_node_id", "condition")


# --- Raw documents ---

def _reject_constant(token: str):
    raise ValueError(f"Unexpected token {token}")


def load_document(text: str) -> Any:
    """
    Decode document JSON text strictly.

    NaN and Infinity are not JSON and are rejected. Every decoding failure,
    including input nested too deeply to decode, is raised as ValueError.
    """
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except RecursionError:
        raise ValueError("Document is nested too deeply") from None


def dump_document(schema: FlowSchema) -> str:
    """Encode a document as pretty-printed, strictly valid JSON."""
    return json.dumps(schema.to_json_dict(), indent=2, allow_nan=False)


def _strip(container: dict, keys: Sequence[str]) -> dict:
    return {
        key: value.strip() if key in keys and isinstance(value, str) else value
        for key, value in container.items()
    }


def trim_document(document: Any) -> Any:
    """
    Strip surrounding whitespace from the document's text fields.

    Applies to startNodeId, node id/label/description/prompt and edge
    to_node_id/condition. Parameter values are kept verbatim. Parts of the
    wrong shape are returned unchanged for the validator to report.
    """
    if not isinstance(document, dict):
        return document
    trimmed = _strip(document, ("startNodeId",))
    nodes = document.get("nodes")
    if not isinstance(nodes, list):
        return trimmed

    trimmed_nodes = []
    for node in nodes:
        if isinstance(node, dict):
            node = _strip(node, TRIMMED_NODE_FIELDS)
            if isinstance(node.get("edges"), list):
                node["edges"] = [
                    _strip(edge, TRIMMED_EDGE_FIELDS) if isinstance(edge, dict) else edge
                    for edge in node["edges"]
                ]
        trimmed_nodes.append(node)
    trimmed["nodes"] = trimmed_nodes
    return trimmed


# --- Default resolution ---

def resolve_start_node_id(start_node_id: Optional[str], nodes: Sequence[NodeRecord]) -> str:
    """
    Resolve the document start node id.

    Precedence: the explicit start node, then the first node's id, then "".
    An empty result lets validation tell "no start" apart from "no nodes".
    """
    if start_node_id is not None:
        return start_node_id
    if nodes:
        return nodes[0].id
    return ""


def resolve_label(schema_node: SchemaNode) -> str:
    """A node without a label displays its id."""
    return schema_node.label if schema_node.label is not None else schema_node.id


def resolve_position(schema_node: SchemaNode) -> Position:
    """A node without a position starts at the origin until laid out."""
    return schema_node.position if schema_node.position is not None else Position()


# --- Conversion ---

def to_schema(
    nodes: Iterable[NodeRecord],
    edges: Iterable[EdgeRecord],
    start_node_id: Optional[str],
) -> FlowSchema:
    """
    Convert the in-memory graph to the persisted document.

    Nodes keep store order; each carries its own outgoing edges in edge order.
    Edges whose source is not a node have no place in the document.
    """
    nodes = list(nodes)
    edges_by_source: dict[str, list[EdgeRecord]] = {}
    for edge in edges:
        edges_by_source.setdefault(edge.source, []).append(edge)

    schema_nodes = [
        SchemaNode(
            id=node.id,
            label=node.label,
            description=node.description,
            prompt=node.prompt,
            position=Position(x=node.position.x, y=node.position.y),
            edges=[
                SchemaEdge(
                    to_node_id=edge.target,
                    condition=edge.condition,
                    parameters=dict(edge.parameters),
                )
                for edge in edges_by_source.get(node.id, [])
            ],
        )
        for node in nodes
    ]

    return FlowSchema(
        startNodeId=resolve_start_node_id(start_node_id, nodes),
        nodes=schema_nodes,
    )


def from_schema(schema: FlowSchema, layout: LayoutFn = auto_layout) -> GraphState:
    """
    Convert a persisted document to the in-memory graph.

    If any node lacks a position, the whole node set goes through `layout`.
    The start node id passes through unchanged; callers validate it first.

    Args:
        schema: A structurally valid flow document
        layout: Layout collaborator, called as layout(nodes, edges)

    Returns:
        GraphState holding the hydrated nodes, edges and start node id
    """
    nodes = [
        NodeRecord(
            id=schema_node.id,
            label=resolve_label(schema_node),
            description=schema_node.description,
            prompt=schema_node.prompt,
            position=resolve_position(schema_node),
        )
        for schema_node in schema.nodes
    ]

    edges = [
        EdgeRecord(
            id=generate_edge_id(),
            source=schema_node.id,
            target=schema_edge.to_node_id,
            condition=schema_edge.condition,
            parameters=dict(schema_edge.parameters or {}),
        )
        for schema_node in schema.nodes
        for schema_edge in schema_node.edges
    ]

    if any(schema_node.position is None for schema_node in schema.nodes):
        nodes = layout(nodes, edges)

    return GraphState(
        nodes=tuple(nodes),
        edges=tuple(edges),
        start_node_id=schema.startNodeId,
    )
