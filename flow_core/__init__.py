"""
Flow Core - Graph state engine for prompt flows.

This package provides the in-memory flow model, its undo/redo history,
structural validation, reachability analysis and the mapping to and from
the persisted JSON document. The HTTP backend and the CLI are thin callers
of what is exported here.
"""

from .models import (
    # Core models
    Position,
    NodeRecord,
    EdgeRecord,
    GraphState,
    # Persisted document
    SchemaEdge,
    SchemaNode,
    FlowSchema,
    # Canvas deltas
    NodeChange,
    EdgeChange,
    # Request models (for API)
    UpdateNodeRequest,
    SetStartNodeRequest,
    CreateEdgeRequest,
    UpdateEdgeRequest,
    UpdateEdgeTargetRequest,
    ConnectionCheckRequest,
    ImportRequest,
    generate_node_id,
    generate_edge_id,
)

from .validation import (
    validate_schema,
    validate_all,
    validation_summary,
    format_issues,
    ValidationIssue,
    ValidationResult,
    IssueSeverity,
)
from .analysis import analyze_graph
from .layout import auto_layout
from .serialization import to_schema, from_schema
from .store import FlowStore, ImportResult, is_valid_connection

__all__ = [
    # Models
    "Position",
    "NodeRecord",
    "EdgeRecord",
    "GraphState",
    "SchemaEdge",
    "SchemaNode",
    "FlowSchema",
    "NodeChange",
    "EdgeChange",
    # Request models
    "UpdateNodeRequest",
    "SetStartNodeRequest",
    "CreateEdgeRequest",
    "UpdateEdgeRequest",
    "UpdateEdgeTargetRequest",
    "ConnectionCheckRequest",
    "ImportRequest",
    "generate_node_id",
    "generate_edge_id",
    # Validation
    "validate_schema",
    "validate_all",
    "validation_summary",
    "format_issues",
    "ValidationIssue",
    "ValidationResult",
    "IssueSeverity",
    # Analysis
    "analyze_graph",
    # Layout
    "auto_layout",
    # Serialization
    "to_schema",
    "from_schema",
    # Store
    "FlowStore",
    "ImportResult",
    "is_valid_connection",
]
