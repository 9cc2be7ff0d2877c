"""
Core data models for prompt flows.

Two representations live here:
- The in-memory graph (NodeRecord, EdgeRecord, GraphState) owned by the store
- The persisted document (FlowSchema, SchemaNode, SchemaEdge) used for export/import

Field Naming Convention:
- In-memory edges use `source` and `target`
- Document edges are nested under their source node and point at `to_node_id`
- The document keeps the `startNodeId` key verbatim; in memory it is `start_node_id`

All in-memory records are frozen. Mutations produce new values with
`model_copy(update=...)`, so history snapshots can keep references to old
values without copying them.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid

from .config import DEFAULT_EDGE_CONDITION, DEFAULT_NODE_LABEL


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex}"


def generate_edge_id() -> str:
    """Generate a unique edge ID."""
    return f"e{uuid.uuid4().hex}"


class Position(BaseModel):
    """Canvas coordinates of a node's top-left corner."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    x: float = 0.0
    y: float = 0.0


class NodeRecord(BaseModel):
    """A prompt node in the flow."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_node_id)
    label: str = DEFAULT_NODE_LABEL
    description: str = ""
    prompt: str = ""
    position: Position = Field(default_factory=Position)
    selected: bool = False
    # Measured size on the canvas, reported by dimension changes
    width: Optional[float] = None
    height: Optional[float] = None


class EdgeRecord(BaseModel):
    """A conditioned transition between two nodes."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_edge_id)
    source: str  # Source node ID
    target: str  # Target node ID
    condition: str = DEFAULT_EDGE_CONDITION
    parameters: dict[str, str] = Field(default_factory=dict)
    # Connection handles on the canvas, opaque to the engine
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    selected: bool = False


class GraphState(BaseModel):
    """
    The graph aggregate: nodes, edges and the start node pointer.

    This is also the history snapshot type. Node order is significant
    only for default placement of new nodes.
    """
    model_config = ConfigDict(frozen=True)

    nodes: tuple[NodeRecord, ...] = ()
    edges: tuple[EdgeRecord, ...] = ()
    start_node_id: Optional[str] = None

    def get_node(self, node_id: str) -> Optional[NodeRecord]:
        """Get a node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[EdgeRecord]:
        """Get an edge by ID (O(n))."""
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def has_edge(self, edge_id: str) -> bool:
        return self.get_edge(edge_id) is not None


# --- Persisted document ---

class SchemaEdge(BaseModel):
    """An outgoing transition as stored under its source node."""
    to_node_id: str
    condition: str
    parameters: Optional[dict[str, str]] = None


class SchemaNode(BaseModel):
    """A node as stored in the persisted document."""
    id: str
    label: Optional[str] = None
    description: str
    prompt: str
    edges: list[SchemaEdge] = Field(default_factory=list)
    position: Optional[Position] = None


class FlowSchema(BaseModel):
    """
    The canonical persisted document.
    This is what gets exported to and imported from JSON.
    """
    startNodeId: str
    nodes: list[SchemaNode] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict, dropping absent optional fields."""
        return self.model_dump(exclude_none=True)


# --- Change deltas from the canvas ---

class Dimensions(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    width: float
    height: float


class NodeChange(BaseModel):
    """An incremental change to the node list reported by the canvas."""
    type: Literal["add", "remove", "position", "select", "dimensions", "replace"]
    id: Optional[str] = None
    position: Optional[Position] = None
    selected: Optional[bool] = None
    dimensions: Optional[Dimensions] = None
    item: Optional[NodeRecord] = None


class EdgeChange(BaseModel):
    """An incremental change to the edge list reported by the canvas."""
    type: Literal["add", "remove", "select", "replace"]
    id: Optional[str] = None
    selected: Optional[bool] = None
    item: Optional[EdgeRecord] = None


# --- API Request/Response Models ---

class UpdateNodeRequest(BaseModel):
    """Request to update an existing node (partial update)."""
    label: Optional[str] = None
    description: Optional[str] = None
    prompt: Optional[str] = None


class SetStartNodeRequest(BaseModel):
    """Request to set or clear the start node."""
    node_id: Optional[str] = None


class CreateEdgeRequest(BaseModel):
    """Request to create a new edge."""
    source: str = ""
    target: str = ""
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class UpdateEdgeRequest(BaseModel):
    """Request to update an existing edge (partial update)."""
    condition: Optional[str] = None
    parameters: Optional[dict[str, str]] = None


class UpdateEdgeTargetRequest(BaseModel):
    """Request to point an edge at a different node."""
    target: str


class ConnectionCheckRequest(BaseModel):
    """Request to check whether a connection would be accepted."""
    source: Optional[str] = None
    target: Optional[str] = None


class ImportRequest(BaseModel):
    """Request carrying a raw JSON document to import."""
    json_text: str
