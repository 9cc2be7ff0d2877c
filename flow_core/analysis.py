"""
Flow analysis - Reachability analysis from the start node.

Run after (or alongside) structural validation. Unreachable nodes and
self-loops on reachable nodes are reported as warnings; a start node that
does not resolve is the only error this phase can produce.
"""

from typing import TYPE_CHECKING

from .validation import IssueSeverity, ValidationIssue, ValidationResult

if TYPE_CHECKING:
    from .models import FlowSchema


def analyze_graph(schema: "FlowSchema") -> ValidationResult:
    """
    Analyze reachability of a flow document using an iterative DFS.

    Each node is processed at most once. While visiting a node, an edge back
    to the node itself yields a self-loop warning, and unvisited declared
    targets are pushed onto the stack. Every declared node left unvisited
    yields a disconnected warning. Self-loops on unreached nodes are only
    reported as disconnected.

    Args:
        schema: The flow document to analyze

    Returns:
        ValidationResult; a missing start node gives exactly one error and no warnings
    """
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    node_by_id = {node.id: node for node in schema.nodes}

    if schema.startNodeId not in node_by_id:
        errors.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            message=f"Start node not found: {schema.startNodeId}",
            field="startNodeId",
            path=("startNodeId",),
        ))
        return ValidationResult(errors=errors, warnings=warnings)

    visited: set[str] = set()
    stack = [schema.startNodeId]

    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue

        visited.add(node_id)
        node = node_by_id[node_id]

        for edge in node.edges:
            if edge.to_node_id == node.id:
                warnings.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message="Node has a self-loop edge",
                    node_id=node.id,
                ))

            if edge.to_node_id not in visited and edge.to_node_id in node_by_id:
                stack.append(edge.to_node_id)

    for node in schema.nodes:
        if node.id not in visited:
            warnings.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Node is disconnected from the flow",
                node_id=node.id,
            ))

    return ValidationResult(errors=errors, warnings=warnings)

