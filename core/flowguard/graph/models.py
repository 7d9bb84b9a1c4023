"""
Workflow graph models - the authored automation the validator checks.

A workflow is a directed graph of typed nodes (triggers, actions,
transforms). Node types are keys into the ScopeRegistry, e.g.
"trigger.time.cron" or "action.gmail.send". Edges carry connectivity
only; parallel edges between the same pair are allowed.

These models describe well-formed graphs. The validator itself works on
raw JSON so it can report malformed input instead of failing to parse it.
"""

from typing import Any

from pydantic import BaseModel, Field


class NodeSpec(BaseModel):
    """A node in a workflow graph."""

    id: str
    type: str = Field(description="Registry key, e.g. 'action.gmail.send'")
    data: dict[str, Any] = Field(default_factory=dict, description="Connector parameters")

    model_config = {"extra": "allow"}

    @property
    def is_trigger(self) -> bool:
        return self.type.startswith("trigger.")


class EdgeSpec(BaseModel):
    """A directed connection between two nodes."""

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")

    model_config = {"extra": "allow"}


class WorkflowGraph(BaseModel):
    """
    Complete workflow graph as submitted by the editor.

    Example:
        WorkflowGraph(
            id="g1",
            name="Daily digest",
            nodes=[
                NodeSpec(id="a", type="trigger.time.cron"),
                NodeSpec(id="b", type="action.gmail.send"),
            ],
            edges=[EdgeSpec(source="a", target="b")],
        )
    """

    id: str
    name: str
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node, in authored order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def to_payload(self) -> dict[str, Any]:
        """Plain JSON-compatible dict, the shape the validator consumes."""
        return self.model_dump(mode="json")
