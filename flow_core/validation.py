"""
Flow validation - Structural checks for persisted flow documents.

Provides the schema validator used by the store after every mutation and by
the import path before any state is replaced. The validator never raises:
every violation becomes a ValidationIssue in the returned result.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .models import FlowSchema


PathSegment = Union[str, int]

MSG_REQUIRED = "Required"
MSG_NON_EMPTY = "Must be a non-empty string"


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Structural or referential violation, flow is unusable
    WARNING = "warning"  # Flow is usable but suspicious


@dataclass
class ValidationIssue:
    """A single validation issue found in a flow."""
    severity: IssueSeverity
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    field: Optional[str] = None
    path: tuple[PathSegment, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_id:
            result["edge_id"] = self.edge_id
        if self.field:
            result["field"] = self.field
        return result


@dataclass
class ValidationResult:
    """Errors and warnings produced by one validation pass."""
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings]

    def to_dict(self) -> dict:
        return {
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "is_valid": self.is_valid,
        }


# --- Path helpers ---

def format_issue_path(path: Iterable[PathSegment]) -> str:
    """Render ("nodes", 0, "id") as "nodes[0].id"."""
    rendered = ""
    for index, segment in enumerate(path):
        if isinstance(segment, int):
            rendered += f"[{segment}]"
        elif index == 0:
            rendered += segment
        else:
            rendered += f".{segment}"
    return rendered or "root"


def format_issues(issues: Iterable[ValidationIssue]) -> list[str]:
    """Format issues as "<path>: <message>" strings, deduplicated in order."""
    messages = [f"{format_issue_path(issue.path)}: {issue.message}" for issue in issues]
    return list(dict.fromkeys(messages))


def format_model_errors(exc: PydanticValidationError) -> list[str]:
    """Format a pydantic ValidationError the same way as validator issues."""
    messages = [
        f"{format_issue_path(tuple(error['loc']))}: {error['msg']}"
        for error in exc.errors()
    ]
    return list(dict.fromkeys(messages))


def _node_id_from_path(path: tuple[PathSegment, ...], document: Any) -> Optional[str]:
    """Resolve the id of the node a path points into, if there is one."""
    if len(path) < 2 or path[0] != "nodes" or not isinstance(path[1], int):
        return None
    nodes = document.get("nodes") if isinstance(document, dict) else None
    if not isinstance(nodes, list) or path[1] >= len(nodes):
        return None
    node = nodes[path[1]]
    if not isinstance(node, dict):
        return None
    node_id = node.get("id")
    return node_id if isinstance(node_id, str) and node_id else None


def _error(path: tuple[PathSegment, ...], message: str, document: Any) -> ValidationIssue:
    return ValidationIssue(
        severity=IssueSeverity.ERROR,
        message=message,
        node_id=_node_id_from_path(path, document),
        field=".".join(str(segment) for segment in path) or None,
        path=path,
    )


def _is_number(value: Any) -> bool:
    """Finite int or float. Booleans and ints too large for a float are not numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _string_problem(container: dict, key: str) -> Optional[str]:
    """Return the message for a missing, non-string or blank value, else None."""
    if key not in container:
        return MSG_REQUIRED
    value = container[key]
    if not isinstance(value, str):
        return "Expected string"
    if value.strip() == "":
        return MSG_NON_EMPTY
    return None


def _check_string(container: dict, key: str, path: tuple[PathSegment, ...],
                  document: Any, issues: list[ValidationIssue]) -> None:
    problem = _string_problem(container, key)
    if problem:
        issues.append(_error(path + (key,), problem, document))


def _check_position(node: dict, path: tuple[PathSegment, ...],
                    document: Any, issues: list[ValidationIssue]) -> None:
    position = node["position"]
    if not isinstance(position, dict):
        issues.append(_error(path, "Expected object", document))
        return
    for axis in ("x", "y"):
        if axis not in position:
            issues.append(_error(path + (axis,), MSG_REQUIRED, document))
        elif not _is_number(position[axis]):
            issues.append(_error(path + (axis,), "Expected number", document))


def _check_parameters(edge: dict, path: tuple[PathSegment, ...],
                      document: Any, issues: list[ValidationIssue]) -> None:
    parameters = edge["parameters"]
    if not isinstance(parameters, dict):
        issues.append(_error(path, "Expected object", document))
        return
    for key, value in parameters.items():
        if not isinstance(value, str):
            issues.append(_error(path + (key,), "Expected string", document))


def validate_schema(document: Any) -> ValidationResult:
    """
    Validate the structure of a candidate flow document.

    Checks, in order, collecting every violation:
    1. startNodeId is a non-empty string
    2. Each node has non-empty id, description and prompt; label, if present, is non-empty
    3. Each edge has non-empty to_node_id and condition
    4. Node ids are unique
    5. startNodeId resolves to a declared node
    6. Every edge target resolves to a declared node

    A document that is not an object, or whose `nodes` is not an array,
    short-circuits with a single structural error.

    Args:
        document: A FlowSchema or the raw decoded JSON value

    Returns:
        ValidationResult with errors only (this phase never warns)
    """
    if isinstance(document, FlowSchema):
        document = document.to_json_dict()

    if not isinstance(document, dict):
        return ValidationResult(errors=[_error((), "Expected object", document)])

    nodes = document.get("nodes")
    if not isinstance(nodes, list):
        message = MSG_REQUIRED if "nodes" not in document else "Expected array"
        return ValidationResult(errors=[_error(("nodes",), message, document)])

    errors: list[ValidationIssue] = []

    # 1. Start node id
    _check_string(document, "startNodeId", (), document, errors)

    # 2. Node fields
    for node_index, node in enumerate(nodes):
        node_path = ("nodes", node_index)
        if not isinstance(node, dict):
            errors.append(_error(node_path, "Expected object", document))
            continue
        _check_string(node, "id", node_path, document, errors)
        if "label" in node:
            _check_string(node, "label", node_path, document, errors)
        _check_string(node, "description", node_path, document, errors)
        _check_string(node, "prompt", node_path, document, errors)
        if "edges" not in node:
            errors.append(_error(node_path + ("edges",), MSG_REQUIRED, document))
        elif not isinstance(node["edges"], list):
            errors.append(_error(node_path + ("edges",), "Expected array", document))
        if "position" in node:
            _check_position(node, node_path + ("position",), document, errors)

    # 3. Edge fields
    for node_index, node in enumerate(nodes):
        if not isinstance(node, dict) or not isinstance(node.get("edges"), list):
            continue
        for edge_index, edge in enumerate(node["edges"]):
            edge_path = ("nodes", node_index, "edges", edge_index)
            if not isinstance(edge, dict):
                errors.append(_error(edge_path, "Expected object", document))
                continue
            _check_string(edge, "to_node_id", edge_path, document, errors)
            _check_string(edge, "condition", edge_path, document, errors)
            if "parameters" in edge:
                _check_parameters(edge, edge_path + ("parameters",), document, errors)

    # 4. Unique node ids
    seen_ids: set[str] = set()
    for node_index, node in enumerate(nodes):
        if not isinstance(node, dict) or not _non_empty_string(node.get("id")):
            continue
        node_id = node["id"]
        if node_id in seen_ids:
            errors.append(_error(("nodes", node_index, "id"),
                                 f"Duplicate node id: {node_id}", document))
        seen_ids.add(node_id)

    # 5. Start node reference
    start_node_id = document.get("startNodeId")
    if _non_empty_string(start_node_id) and start_node_id not in seen_ids:
        errors.append(_error(("startNodeId",),
                             f"Start node must reference an existing node: {start_node_id}",
                             document))

    # 6. Edge target references
    for node_index, node in enumerate(nodes):
        if not isinstance(node, dict) or not isinstance(node.get("edges"), list):
            continue
        for edge_index, edge in enumerate(node["edges"]):
            if not isinstance(edge, dict) or not _non_empty_string(edge.get("to_node_id")):
                continue
            if edge["to_node_id"] not in seen_ids:
                errors.append(_error(("nodes", node_index, "edges", edge_index, "to_node_id"),
                                     f"Edge target does not exist: {edge['to_node_id']}",
                                     document))

    return ValidationResult(errors=errors)


def validate_all(schema: FlowSchema) -> ValidationResult:
    """
    Run structural validation and graph analysis together.

    Errors and warnings are the concatenation of both phases, validator first.
    A graph error on a field the validator already flagged (an unresolved
    startNodeId) is not repeated, so a missing start yields a single error.
    """
    from .analysis import analyze_graph

    structural = validate_schema(schema)
    graph = analyze_graph(schema)
    flagged = {issue.field for issue in structural.errors if issue.field}
    return ValidationResult(
        errors=[*structural.errors, *(e for e in graph.errors if e.field not in flagged)],
        warnings=[*structural.warnings, *graph.warnings],
    )


def validation_summary(result: ValidationResult) -> dict:
    """
    Create a summary of a validation result.

    Args:
        result: The validation result to summarize

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(result.errors) + len(result.warnings),
        "errors": len(result.errors),
        "warnings": len(result.warnings),
        "valid": result.is_valid
    }
