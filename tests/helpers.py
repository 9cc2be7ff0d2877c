"""Builders for raw flow documents used across the tests."""

from flow_core import FlowSchema


def schema_node(node_id, edges=(), label=None, position=(0.0, 0.0), **overrides):
    """Build a raw document node with valid defaults."""
    node = {
        "id": node_id,
        "description": f"{node_id} description",
        "prompt": f"{node_id} prompt",
        "edges": [
            edge if isinstance(edge, dict) else {"to_node_id": edge, "condition": f"to {edge}"}
            for edge in edges
        ],
    }
    if label is not None:
        node["label"] = label
    if position is not None:
        node["position"] = {"x": position[0], "y": position[1]}
    node.update(overrides)
    return node


def document(start, *nodes):
    return {"startNodeId": start, "nodes": list(nodes)}


def flow(start, *nodes) -> FlowSchema:
    return FlowSchema.model_validate(document(start, *nodes))
