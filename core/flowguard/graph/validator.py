"""
Structural validation for workflow graphs.

Runs before a workflow is saved or started and proves it is safe to
execute: required fields present, every edge endpoint resolves to a node,
and no directed cycle. All checks run on every call so the editor can
show every problem at once. Problems are returned, never raised.

Alongside the verdict the validator aggregates the OAuth scopes the
workflow needs and a complexity estimate, both from the ScopeRegistry.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from flowguard.graph.registry import ScopeRegistry

logger = logging.getLogger(__name__)

# Weight of a node whose type is missing altogether
UNTYPED_NODE_WEIGHT = 1


class IssueSeverity(StrEnum):
    """How serious a validation issue is. Only errors block save/run."""

    ERROR = "error"
    WARNING = "warning"


class IssueCode(StrEnum):
    """Machine-readable issue codes."""

    MISSING_GRAPH = "MISSING_GRAPH"
    MISSING_ID = "MISSING_ID"
    MISSING_NAME = "MISSING_NAME"
    INVALID_NODES = "INVALID_NODES"
    INVALID_EDGES = "INVALID_EDGES"
    MISSING_TYPE = "MISSING_TYPE"
    MISSING_SOURCE = "MISSING_SOURCE"
    MISSING_TARGET = "MISSING_TARGET"
    INVALID_SOURCE = "INVALID_SOURCE"
    INVALID_TARGET = "INVALID_TARGET"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    DUPLICATE_NODE_ID = "DUPLICATE_NODE_ID"
    TRIGGER_TO_TRIGGER = "TRIGGER_TO_TRIGGER"


@dataclass
class ValidationIssue:
    """A single problem found in a graph, located by a JSON-ish path."""

    path: str
    message: str
    severity: IssueSeverity
    code: IssueCode
    cycle: list[str] | None = None  # CIRCULAR_DEPENDENCY only

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "message": self.message,
            "severity": self.severity.value,
            "code": self.code.value,
        }
        if self.cycle is not None:
            data["cycle"] = list(self.cycle)
        return data


@dataclass
class ValidationResult:
    """Outcome of validating a graph. Computed on demand, never persisted."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    required_scopes: set[str] = field(default_factory=set)
    estimated_complexity: int | float = 0

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(f"{e.path}: {e.message}" for e in self.errors)

    def issues(self, code: IssueCode | str) -> list[ValidationIssue]:
        """All errors and warnings carrying ``code``."""
        return [i for i in [*self.errors, *self.warnings] if i.code == code]

    def to_dict(self) -> dict[str, Any]:
        """JSON shape consumed by the workflow editor."""
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "requiredScopes": sorted(self.required_scopes),
            "estimatedComplexity": self.estimated_complexity,
        }


def _present(value: Any) -> bool:
    """Identifier-like fields must be non-empty strings."""
    return isinstance(value, str) and value.strip() != ""


class GraphValidator:
    """
    Validates submitted workflow graphs.

    Checks, in order (each runs even when an earlier one failed):
    1. graph / id / name presence
    2. nodes and edges are lists
    3. per node: id and type present; scopes and weight from the registry
    4. per edge: source and target present and resolving to nodes
    5. cycle detection (first cycle found only)

    Example:
        validator = GraphValidator()
        result = validator.validate({
            "id": "g1",
            "name": "Daily digest",
            "nodes": [
                {"id": "a", "type": "trigger.time.cron"},
                {"id": "b", "type": "action.gmail.send"},
            ],
            "edges": [{"source": "a", "target": "b"}],
        })
        result.valid  # True
        result.estimated_complexity  # 4
    """

    def __init__(self, registry: ScopeRegistry | None = None):
        self.registry = registry or ScopeRegistry.default()

    def validate(self, graph: Any) -> ValidationResult:
        """
        Validate a graph given as parsed JSON or a pydantic model.

        Args:
            graph: Mapping with id, name, nodes and edges (or a WorkflowGraph)

        Returns:
            ValidationResult; ``valid`` is True iff there are no errors
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        required_scopes: set[str] = set()
        complexity: int | float = 0

        if isinstance(graph, BaseModel):
            graph = graph.model_dump(mode="json")

        if graph is None or not isinstance(graph, Mapping):
            errors.append(
                ValidationIssue(
                    "root", "Graph is required", IssueSeverity.ERROR, IssueCode.MISSING_GRAPH
                )
            )
            return ValidationResult(valid=False, errors=errors, warnings=warnings)

        if not _present(graph.get("id")):
            errors.append(
                ValidationIssue(
                    "id", "Graph ID is required", IssueSeverity.ERROR, IssueCode.MISSING_ID
                )
            )

        if not _present(graph.get("name")):
            errors.append(
                ValidationIssue(
                    "name", "Graph name is required", IssueSeverity.ERROR, IssueCode.MISSING_NAME
                )
            )

        nodes = graph.get("nodes")
        edges = graph.get("edges")
        node_types: dict[str, str | None] = {}

        if not isinstance(nodes, list):
            errors.append(
                ValidationIssue(
                    "nodes", "Nodes must be an array", IssueSeverity.ERROR, IssueCode.INVALID_NODES
                )
            )
            nodes = None
        else:
            for index, node in enumerate(nodes):
                complexity += self._check_node(
                    node, index, node_types, required_scopes, errors, warnings
                )

        if not isinstance(edges, list):
            errors.append(
                ValidationIssue(
                    "edges", "Edges must be an array", IssueSeverity.ERROR, IssueCode.INVALID_EDGES
                )
            )
            edges = None
        else:
            known = node_types if nodes is not None else None
            for index, edge in enumerate(edges):
                self._check_edge(edge, index, known, errors, warnings)

        cycle = self.find_cycle(list(node_types), edges or [])
        if cycle:
            errors.append(
                ValidationIssue(
                    "edges",
                    f"Circular dependency detected: {' → '.join(cycle)}",
                    IssueSeverity.ERROR,
                    IssueCode.CIRCULAR_DEPENDENCY,
                    cycle=cycle,
                )
            )

        result = ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            required_scopes=required_scopes,
            estimated_complexity=complexity,
        )
        logger.debug(
            f"Validated graph '{graph.get('id')}': valid={result.valid}, "
            f"{len(errors)} error(s), {len(warnings)} warning(s)"
        )
        return result

    def _check_node(
        self,
        node: Any,
        index: int,
        node_types: dict[str, str | None],
        required_scopes: set[str],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> int | float:
        """Check one node, collect its scopes and return its weight."""
        path = f"nodes[{index}]"
        if not isinstance(node, Mapping):
            node = {}

        node_id = node.get("id")
        node_type = node.get("type")
        weight: int | float = UNTYPED_NODE_WEIGHT

        if not _present(node_id):
            errors.append(
                ValidationIssue(
                    f"{path}.id", "Node ID is required", IssueSeverity.ERROR, IssueCode.MISSING_ID
                )
            )

        if not _present(node_type):
            errors.append(
                ValidationIssue(
                    f"{path}.type",
                    "Node type is required",
                    IssueSeverity.ERROR,
                    IssueCode.MISSING_TYPE,
                )
            )
            node_type = None
        else:
            required_scopes.update(self.registry.scopes_for(node_type))
            weight = self.registry.weight_for(node_type)

        if _present(node_id):
            if node_id in node_types:
                warnings.append(
                    ValidationIssue(
                        f"{path}.id",
                        f"Duplicate node ID '{node_id}'",
                        IssueSeverity.WARNING,
                        IssueCode.DUPLICATE_NODE_ID,
                    )
                )
            else:
                node_types[node_id] = node_type

        return weight

    def _check_edge(
        self,
        edge: Any,
        index: int,
        node_types: dict[str, str | None] | None,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        """Check one edge. ``node_types`` is None when the node list itself was invalid."""
        path = f"edges[{index}]"
        if not isinstance(edge, Mapping):
            edge = {}

        source = edge.get("source")
        target = edge.get("target")

        if not _present(source):
            errors.append(
                ValidationIssue(
                    f"{path}.source",
                    "Edge source is required",
                    IssueSeverity.ERROR,
                    IssueCode.MISSING_SOURCE,
                )
            )
        elif node_types is not None and source not in node_types:
            errors.append(
                ValidationIssue(
                    f"{path}.source",
                    f"Source node '{source}' not found",
                    IssueSeverity.ERROR,
                    IssueCode.INVALID_SOURCE,
                )
            )

        if not _present(target):
            errors.append(
                ValidationIssue(
                    f"{path}.target",
                    "Edge target is required",
                    IssueSeverity.ERROR,
                    IssueCode.MISSING_TARGET,
                )
            )
        elif node_types is not None and target not in node_types:
            errors.append(
                ValidationIssue(
                    f"{path}.target",
                    f"Target node '{target}' not found",
                    IssueSeverity.ERROR,
                    IssueCode.INVALID_TARGET,
                )
            )

        if node_types is None:
            return
        source_type = node_types.get(source) if _present(source) else None
        target_type = node_types.get(target) if _present(target) else None
        if (
            source_type
            and target_type
            and source_type.startswith("trigger.")
            and target_type.startswith("trigger.")
        ):
            warnings.append(
                ValidationIssue(
                    path,
                    "Cannot connect two trigger nodes",
                    IssueSeverity.WARNING,
                    IssueCode.TRIGGER_TO_TRIGGER,
                )
            )

    @staticmethod
    def find_cycle(node_ids: list[str], edges: list[Any]) -> list[str] | None:
        """
        Return the first directed cycle found, or None.

        Depth-first search from each unvisited node in declaration order,
        following edges in declaration order. When an edge points back at a
        node on the current path, the cycle is the path slice from that node
        to the current one. Uses an explicit stack so deep graphs cannot hit
        the recursion limit.
        """
        adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
        for edge in edges:
            if not isinstance(edge, Mapping):
                continue
            source = edge.get("source")
            target = edge.get("target")
            if _present(source) and _present(target) and source in adjacency:
                adjacency[source].append(target)

        visited: set[str] = set()
        for root in node_ids:
            if root in visited:
                continue
            visited.add(root)
            path = [root]
            on_path = {root}
            frames = [iter(adjacency[root])]

            while frames:
                descended = False
                for neighbor in frames[-1]:
                    if neighbor not in adjacency:
                        continue
                    if neighbor in on_path:
                        return path[path.index(neighbor) :]
                    if neighbor not in visited:
                        visited.add(neighbor)
                        path.append(neighbor)
                        on_path.add(neighbor)
                        frames.append(iter(adjacency[neighbor]))
                        descended = True
                        break
                if not descended:
                    frames.pop()
                    on_path.discard(path.pop())

        return None


def validate_graph(graph: Any, registry: ScopeRegistry | None = None) -> ValidationResult:
    """Validate ``graph`` with a one-off GraphValidator."""
    return GraphValidator(registry).validate(graph)
