"""
Layout algorithm for flow nodes.

Used by the serializer when an imported document lacks node positions.
Nodes are arranged in layers following edge direction (top-to-bottom by
default), with each layer centred against the widest one.

Layout never mutates its input: it returns new node values where only
`position` differs.
"""

from collections import defaultdict
from typing import TYPE_CHECKING

from .config import (
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    LAYOUT_NODE_SEPARATION,
    LAYOUT_RANK_SEPARATION,
)
from .models import Position

if TYPE_CHECKING:
    from .models import EdgeRecord, NodeRecord


def _node_size(node: "NodeRecord") -> tuple[float, float]:
    return (node.width or DEFAULT_NODE_WIDTH, node.height or DEFAULT_NODE_HEIGHT)


def assign_ranks(nodes: list["NodeRecord"], edges: list["EdgeRecord"]) -> dict[str, int]:
    """
    Assign a layer index to every node by BFS from the roots.

    Roots are nodes with no incoming edge from another node. If every node
    has one (a cycle through all of them), the first node is the root.
    Nodes the BFS never reaches are placed on layer 0.
    """
    children: dict[str, list[str]] = {n.id: [] for n in nodes}
    has_parent: set[str] = set()

    for edge in edges:
        if edge.source in children and edge.target in children and edge.source != edge.target:
            children[edge.source].append(edge.target)
            has_parent.add(edge.target)

    roots = [n.id for n in nodes if n.id not in has_parent]
    if not roots and nodes:
        roots = [nodes[0].id]

    ranks: dict[str, int] = {}
    queue = [(r, 0) for r in roots]

    while queue:
        node_id, rank = queue.pop(0)
        if node_id in ranks:
            continue
        ranks[node_id] = rank
        for child in children.get(node_id, []):
            queue.append((child, rank + 1))

    for node in nodes:
        if node.id not in ranks:
            ranks[node.id] = 0

    return ranks


def auto_layout(
    nodes: list["NodeRecord"],
    edges: list["EdgeRecord"],
    direction: str = "TB",  # "TB" (top-to-bottom) or "LR" (left-to-right)
    node_separation: float = LAYOUT_NODE_SEPARATION,
    rank_separation: float = LAYOUT_RANK_SEPARATION,
) -> list["NodeRecord"]:
    """
    Compute positions for every node in a layered hierarchy.

    Args:
        nodes: Nodes to arrange (order decides placement within a layer)
        edges: Edges defining the hierarchy
        direction: "TB" for top-to-bottom layers, "LR" for left-to-right
        node_separation: Gap between neighbouring nodes in a layer
        rank_separation: Gap between consecutive layers

    Returns:
        New node values with computed positions, in input order
    """
    if not nodes:
        return []

    ranks = assign_ranks(nodes, edges)
    horizontal = direction == "LR"

    layers: dict[int, list["NodeRecord"]] = defaultdict(list)
    for node in nodes:
        layers[ranks[node.id]].append(node)

    # Extent of each layer along the in-layer axis, and thickness across it
    def along(node: "NodeRecord") -> float:
        width, height = _node_size(node)
        return height if horizontal else width

    def across(node: "NodeRecord") -> float:
        width, height = _node_size(node)
        return width if horizontal else height

    layer_extent = {
        rank: sum(along(n) for n in members) + node_separation * (len(members) - 1)
        for rank, members in layers.items()
    }
    widest = max(layer_extent.values())

    positions: dict[str, Position] = {}
    offset_across = 0.0
    for rank in sorted(layers):
        members = layers[rank]
        cursor = (widest - layer_extent[rank]) / 2
        thickness = max(across(n) for n in members)
        for node in members:
            if horizontal:
                positions[node.id] = Position(x=offset_across, y=cursor)
            else:
                positions[node.id] = Position(x=cursor, y=offset_across)
            cursor += along(node) + node_separation
        offset_across += thickness + rank_separation

    return [node.model_copy(update={"position": positions[node.id]}) for node in nodes]
