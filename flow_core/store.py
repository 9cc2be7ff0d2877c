"""
Flow Store - State container for the flow graph, its history and validation.

This module implements:
- One graph per store instance (nodes, edges, start node pointer)
- Linear undo/redo history using snapshots of immutable graph values
- Mutate-then-validate as one step for every externally visible change
- JSON import/export through the serializer and validator
- Subscriber callbacks for UI collaborators
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .changes import (
    apply_edge_changes,
    apply_node_changes,
    parse_edge_changes,
    parse_node_changes,
    removed_ids,
)
from .config import DEFAULT_FIRST_NODE_POSITION, MAX_HISTORY_SIZE, NEW_NODE_POSITION_OFFSET
from .layout import auto_layout
from .models import (
    EdgeChange,
    EdgeRecord,
    FlowSchema,
    GraphState,
    NodeChange,
    NodeRecord,
    Position,
)
from .serialization import (
    LayoutFn,
    dump_document,
    from_schema,
    load_document,
    to_schema,
    trim_document,
)
from .validation import (
    ValidationIssue,
    format_issues,
    format_model_errors,
    validate_all,
    validate_schema,
)

logger = logging.getLogger(__name__)

NODE_DATA_FIELDS = ("label", "description", "prompt")
EDGE_DATA_FIELDS = ("condition", "parameters")


@dataclass
class ImportResult:
    """Outcome of an import: success, or the user-facing error messages."""
    success: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result: dict = {"success": self.success}
        if not self.success:
            result["errors"] = self.errors
        return result


def is_valid_connection(edges: Iterable[EdgeRecord], source: Optional[str], target: Optional[str]) -> bool:
    """
    Decide whether a new edge from source to target would be accepted.

    Rejects missing endpoints, self-connections and duplicates of an
    existing (source, target) pair.
    """
    if not source or not target:
        return False
    if source == target:
        return False
    return not any(edge.source == source and edge.target == target for edge in edges)


class FlowStore:
    """
    Owns the current flow graph, its history and its validation state.

    The history system works via snapshots:
    - Each mutation pushes the pre-mutation GraphState onto the past stack
    - Undo restores the latest past snapshot, pushing the current state to the future stack
    - Redo re-applies a snapshot from the future stack
    - Any new mutation clears the future stack

    GraphState values are immutable, so snapshots are references, not copies.
    Operations on unknown ids are silent no-ops that return None or False.
    """

    def __init__(self, max_history: int = MAX_HISTORY_SIZE, layout: LayoutFn = auto_layout):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")

        self._state = GraphState()
        self._past: list[GraphState] = []    # Past states (snapshots)
        self._future: list[GraphState] = []  # Future states (for redo)
        self._max_history = max_history
        self._layout = layout

        self._selected_node_id: Optional[str] = None
        self._sidebar_open = False
        self._json_panel_open = False

        self._errors: list[ValidationIssue] = []
        self._warnings: list[ValidationIssue] = []

        self._subscribers: list[Callable[[], None]] = []

    # --- Properties ---

    @property
    def state(self) -> GraphState:
        """Get the current graph value."""
        return self._state

    @property
    def nodes(self) -> tuple[NodeRecord, ...]:
        return self._state.nodes

    @property
    def edges(self) -> tuple[EdgeRecord, ...]:
        return self._state.edges

    @property
    def start_node_id(self) -> Optional[str]:
        return self._state.start_node_id

    @property
    def selected_node_id(self) -> Optional[str]:
        return self._selected_node_id

    @property
    def sidebar_open(self) -> bool:
        return self._sidebar_open

    @property
    def json_panel_open(self) -> bool:
        return self._json_panel_open

    @property
    def errors(self) -> list[ValidationIssue]:
        return list(self._errors)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return list(self._warnings)

    @property
    def max_history(self) -> int:
        return self._max_history

    @property
    def history_size(self) -> int:
        return len(self._past)

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._future) > 0

    # --- Subscribers ---

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for store changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify_change(self):
        """Notify all subscribers of a change."""
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                logger.exception("Store subscriber %r failed", callback)

    # --- History and validation ---

    def _push_snapshot(self):
        """Save the current state to history before a mutation."""
        # A new action invalidates the redo stack
        self._future.clear()
        self._past.append(self._state)
        if len(self._past) > self._max_history:
            self._past.pop(0)

    def _run_validation(self):
        schema = to_schema(self._state.nodes, self._state.edges, self._state.start_node_id)
        result = validate_all(schema)
        self._errors = result.errors
        self._warnings = result.warnings

    def _commit(self, new_state: GraphState, clear_selection_for: Optional[str] = None):
        """Snapshot, apply the new graph value, then re-validate and notify."""
        self._push_snapshot()
        self._state = new_state
        if clear_selection_for is not None and self._selected_node_id == clear_selection_for:
            self._selected_node_id = None
            self._sidebar_open = False
        self._run_validation()
        self._notify_change()

    def _restore(self, snapshot: GraphState):
        self._state = snapshot
        self._selected_node_id = None
        self._sidebar_open = False
        self._run_validation()
        self._notify_change()

    # --- Lookups ---

    def get_node(self, node_id: str) -> Optional[NodeRecord]:
        return self._state.get_node(node_id)

    def get_edge(self, edge_id: str) -> Optional[EdgeRecord]:
        return self._state.get_edge(edge_id)

    def is_valid_connection(self, source: Optional[str], target: Optional[str]) -> bool:
        """Check a prospective connection against the current edges."""
        return is_valid_connection(self._state.edges, source, target)

    # --- Node Operations ---

    def add_node(self) -> NodeRecord:
        """Append a default node placed diagonally below the last node."""
        nodes = self._state.nodes
        if nodes:
            last = nodes[-1].position
            position = Position(
                x=last.x + NEW_NODE_POSITION_OFFSET[0],
                y=last.y + NEW_NODE_POSITION_OFFSET[1],
            )
        else:
            position = Position(x=DEFAULT_FIRST_NODE_POSITION[0], y=DEFAULT_FIRST_NODE_POSITION[1])

        node = NodeRecord(position=position)
        self._commit(self._state.model_copy(update={"nodes": nodes + (node,)}))
        logger.debug("Added node %s at (%s, %s)", node.id, position.x, position.y)
        return node

    def delete_node(self, node_id: str) -> Optional[int]:
        """
        Delete a node together with every edge touching it.

        Clears the start node and the selection if they pointed at the node.

        Returns:
            Number of edges removed, or None if the node does not exist
        """
        if not self._state.has_node(node_id):
            return None

        kept_edges = tuple(
            e for e in self._state.edges if e.source != node_id and e.target != node_id
        )
        removed_count = len(self._state.edges) - len(kept_edges)
        start_node_id = self._state.start_node_id

        self._commit(
            self._state.model_copy(update={
                "nodes": tuple(n for n in self._state.nodes if n.id != node_id),
                "edges": kept_edges,
                "start_node_id": None if start_node_id == node_id else start_node_id,
            }),
            clear_selection_for=node_id,
        )
        logger.debug("Deleted node %s and %d connected edges", node_id, removed_count)
        return removed_count

    def update_node_data(self, node_id: str, **fields) -> Optional[NodeRecord]:
        """
        Merge label/description/prompt values into a node. None values are ignored.

        Raises pydantic.ValidationError for a value of the wrong type; the
        store is left unchanged in that case.
        """
        node = self._state.get_node(node_id)
        if node is None:
            return None

        updates = {k: v for k, v in fields.items() if v is not None and k in NODE_DATA_FIELDS}
        # Validated before committing, so a bad value leaves the store untouched
        updated = NodeRecord.model_validate({**node.model_dump(), **updates})
        self._commit(self._state.model_copy(update={
            "nodes": tuple(updated if n.id == node_id else n for n in self._state.nodes),
        }))
        return updated

    def set_start_node(self, node_id: Optional[str]) -> bool:
        """Set or clear the start node. Unknown ids are ignored."""
        if node_id is not None and not self._state.has_node(node_id):
            return False

        self._commit(self._state.model_copy(update={"start_node_id": node_id}))
        logger.debug("Start node set to %s", node_id)
        return True

    # --- Edge Operations ---

    def add_edge(self, source: Optional[str], target: Optional[str],
                 source_handle: Optional[str] = None,
                 target_handle: Optional[str] = None) -> Optional[EdgeRecord]:
        """
        Add an edge with the default condition and no parameters.

        Only missing endpoints are rejected here; duplicate and self
        connections are screened beforehand with is_valid_connection.
        """
        if not source or not target:
            return None

        edge = EdgeRecord(
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
        )
        self._commit(self._state.model_copy(update={"edges": self._state.edges + (edge,)}))
        logger.debug("Added edge %s: %s -> %s", edge.id, source, target)
        return edge

    def delete_edge(self, edge_id: str) -> bool:
        """Delete an edge."""
        if not self._state.has_edge(edge_id):
            return False

        self._commit(self._state.model_copy(update={
            "edges": tuple(e for e in self._state.edges if e.id != edge_id),
        }))
        return True

    def update_edge_data(self, edge_id: str, **fields) -> Optional[EdgeRecord]:
        """Merge condition/parameters values into an edge. None values are ignored.

        Raises pydantic.ValidationError, before any change, for values of the wrong type.
        """
        edge = self._state.get_edge(edge_id)
        if edge is None:
            return None

        updates = {k: v for k, v in fields.items() if v is not None and k in EDGE_DATA_FIELDS}
        updated = EdgeRecord.model_validate({**edge.model_dump(), **updates})
        self._commit(self._state.model_copy(update={
            "edges": tuple(updated if e.id == edge_id else e for e in self._state.edges),
        }))
        return updated

    def update_edge_target(self, edge_id: str, target_node_id: str) -> Optional[EdgeRecord]:
        """Point an edge at another existing node."""
        edge = self._state.get_edge(edge_id)
        if edge is None or not self._state.has_node(target_node_id):
            return None

        updated = edge.model_copy(update={"target": target_node_id})
        self._commit(self._state.model_copy(update={
            "edges": tuple(updated if e.id == edge_id else e for e in self._state.edges),
        }))
        return updated

    # --- Canvas change handlers ---

    def on_nodes_change(self, changes: Iterable[Union[NodeChange, dict]]):
        """
        Apply incremental node deltas from the canvas.

        Only batches containing a removal are recorded in history and
        re-validated; drags and selection changes are not.
        """
        changes = parse_node_changes(changes)
        removed = removed_ids(changes)

        if removed:
            self._push_snapshot()

        start_node_id = self._state.start_node_id
        self._state = self._state.model_copy(update={
            "nodes": apply_node_changes(changes, self._state.nodes),
            "start_node_id": None if start_node_id in removed else start_node_id,
        })
        if self._selected_node_id in removed:
            self._selected_node_id = None
            self._sidebar_open = False

        if removed:
            self._run_validation()
        self._notify_change()

    def on_edges_change(self, changes: Iterable[Union[EdgeChange, dict]]):
        """Apply incremental edge deltas from the canvas."""
        changes = parse_edge_changes(changes)
        has_remove = bool(removed_ids(changes))

        if has_remove:
            self._push_snapshot()

        self._state = self._state.model_copy(update={
            "edges": apply_edge_changes(changes, self._state.edges),
        })

        if has_remove:
            self._run_validation()
        self._notify_change()

    # --- UI flags ---

    def select_node(self, node_id: Optional[str]):
        self._selected_node_id = node_id
        self._sidebar_open = node_id is not None
        self._notify_change()

    def close_sidebar(self):
        self._selected_node_id = None
        self._sidebar_open = False
        self._notify_change()

    def toggle_json_panel(self):
        self._json_panel_open = not self._json_panel_open
        self._notify_change()

    # --- Validation ---

    def validate(self):
        """Re-run validation against the current graph."""
        self._run_validation()
        self._notify_change()

    def get_node_errors(self, node_id: str) -> list[ValidationIssue]:
        """Errors and warnings tagged with a node id."""
        return [issue for issue in (*self._errors, *self._warnings) if issue.node_id == node_id]

    def get_edge_errors(self, edge_id: str) -> list[ValidationIssue]:
        """Errors and warnings tagged with an edge id."""
        return [issue for issue in (*self._errors, *self._warnings) if issue.edge_id == edge_id]

    # --- Undo/Redo ---

    def undo(self) -> Optional[GraphState]:
        """Undo the last action. Returns the restored state, or None."""
        if not self.can_undo:
            return None

        self._future.append(self._state)
        snapshot = self._past.pop()
        self._restore(snapshot)
        logger.info("Undo (%d left)", len(self._past))
        return self._state

    def redo(self) -> Optional[GraphState]:
        """Redo the last undone action. Returns the restored state, or None."""
        if not self.can_redo:
            return None

        self._past.append(self._state)
        if len(self._past) > self._max_history:
            self._past.pop(0)
        snapshot = self._future.pop()
        self._restore(snapshot)
        logger.info("Redo (%d left)", len(self._future))
        return self._state

    # --- Import/Export ---

    def to_schema(self) -> FlowSchema:
        return to_schema(self._state.nodes, self._state.edges, self._state.start_node_id)

    def export_json(self) -> str:
        """Serialize the current graph as pretty-printed document JSON."""
        return dump_document(self.to_schema())

    def import_json(self, json_text: str) -> ImportResult:
        """
        Replace the whole graph with a document parsed from JSON text.

        Success means parsed and structurally valid; the re-validation that
        follows may still report warnings or graph errors. On failure the
        current graph is left untouched.

        Text fields are trimmed before validation, so whitespace-only values
        fail the non-empty check and padded values are stored stripped.
        """
        try:
            data = trim_document(load_document(json_text))
        except ValueError as e:
            logger.info("Import rejected: invalid JSON (%s)", e)
            return ImportResult(success=False, errors=[f"Invalid JSON: {e}"])

        structural = validate_schema(data)
        if not structural.is_valid:
            errors = format_issues(structural.errors)
            logger.info("Import rejected: %d structural errors", len(errors))
            return ImportResult(success=False, errors=errors)

        try:
            hydrated = from_schema(FlowSchema.model_validate(data), layout=self._layout)
        except PydanticValidationError as e:
            logger.info("Import rejected: document does not match the flow schema")
            return ImportResult(success=False, errors=format_model_errors(e))
        except Exception as e:
            logger.exception("Unexpected failure while importing flow")
            return ImportResult(success=False, errors=[str(e) or "Invalid JSON input"])

        self._state = hydrated
        self._past.clear()
        self._future.clear()
        self._selected_node_id = None
        self._sidebar_open = False
        self._run_validation()
        self._notify_change()
        logger.info("Imported flow with %d nodes and %d edges",
                    len(hydrated.nodes), len(hydrated.edges))
        return ImportResult(success=True)

    # --- Reset ---

    def reset(self):
        """Return to the empty initial state, dropping history and UI flags."""
        self._state = GraphState()
        self._past.clear()
        self._future.clear()
        self._selected_node_id = None
        self._sidebar_open = False
        self._json_panel_open = False
        self._errors = []
        self._warnings = []
        self._notify_change()

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "nodes": [n.model_dump() for n in self._state.nodes],
            "edges": [e.model_dump() for e in self._state.edges],
            "start_node_id": self._state.start_node_id,
            "selected_node_id": self._selected_node_id,
            "sidebar_open": self._sidebar_open,
            "json_panel_open": self._json_panel_open,
            "errors": [issue.to_dict() for issue in self._errors],
            "warnings": [issue.to_dict() for issue in self._warnings],
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }
