"""Workflow graphs: models, the scope/complexity registry and the validator."""

from flowguard.graph.models import EdgeSpec, NodeSpec, WorkflowGraph
from flowguard.graph.registry import DEFAULT_WEIGHT, ScopeRegistry
from flowguard.graph.validator import (
    GraphValidator,
    IssueCode,
    IssueSeverity,
    ValidationIssue,
    ValidationResult,
    validate_graph,
)

__all__ = [
    # Models
    "WorkflowGraph",
    "NodeSpec",
    "EdgeSpec",
    # Registry
    "ScopeRegistry",
    "DEFAULT_WEIGHT",
    # Validation
    "GraphValidator",
    "ValidationResult",
    "ValidationIssue",
    "IssueCode",
    "IssueSeverity",
    "validate_graph",
]
