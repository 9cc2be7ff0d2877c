"""
Incremental node/edge changes reported by the canvas.

The canvas streams small deltas (drag positions, selection, measured sizes,
removals). These helpers apply a batch of deltas to an immutable node or
edge sequence and return the new sequence. A delta that names an unknown
id is skipped.
"""

from typing import Iterable, Optional, Sequence, TypeVar, Union

from .models import EdgeChange, EdgeRecord, NodeChange, NodeRecord

Record = TypeVar("Record", NodeRecord, EdgeRecord)


def _index_of(records: Sequence[Record], record_id: Optional[str]) -> Optional[int]:
    for index, record in enumerate(records):
        if record.id == record_id:
            return index
    return None


def parse_node_changes(changes: Iterable[Union[NodeChange, dict]]) -> list[NodeChange]:
    return [c if isinstance(c, NodeChange) else NodeChange.model_validate(c) for c in changes]


def parse_edge_changes(changes: Iterable[Union[EdgeChange, dict]]) -> list[EdgeChange]:
    return [c if isinstance(c, EdgeChange) else EdgeChange.model_validate(c) for c in changes]


def removed_ids(changes: Iterable[Union[NodeChange, EdgeChange]]) -> set[str]:
    return {c.id for c in changes if c.type == "remove" and c.id is not None}


def apply_node_changes(changes: list[NodeChange], nodes: Sequence[NodeRecord]) -> tuple[NodeRecord, ...]:
    """Apply node deltas in order and return the resulting node tuple."""
    result = list(nodes)

    for change in changes:
        if change.type == "add":
            if change.item is not None:
                result.append(change.item)
            continue

        index = _index_of(result, change.id)
        if index is None:
            continue
        node = result[index]

        if change.type == "remove":
            del result[index]
        elif change.type == "replace" and change.item is not None:
            result[index] = change.item
        elif change.type == "position" and change.position is not None:
            result[index] = node.model_copy(update={"position": change.position})
        elif change.type == "select" and change.selected is not None:
            result[index] = node.model_copy(update={"selected": change.selected})
        elif change.type == "dimensions" and change.dimensions is not None:
            result[index] = node.model_copy(update={
                "width": change.dimensions.width,
                "height": change.dimensions.height,
            })

    return tuple(result)


def apply_edge_changes(changes: list[EdgeChange], edges: Sequence[EdgeRecord]) -> tuple[EdgeRecord, ...]:
    """Apply edge deltas in order and return the resulting edge tuple."""
    result = list(edges)

    for change in changes:
        if change.type == "add":
            if change.item is not None:
                result.append(change.item)
            continue

        index = _index_of(result, change.id)
        if index is None:
            continue

        if change.type == "remove":
            del result[index]
        elif change.type == "replace" and change.item is not None:
            result[index] = change.item
        elif change.type == "select" and change.selected is not None:
            result[index] = result[index].model_copy(update={"selected": change.selected})

    return tuple(result)
