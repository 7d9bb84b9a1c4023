"""Tests for GraphValidator - structural checks, scopes, complexity and cycles."""

import pytest

from flowguard.graph import (
    EdgeSpec,
    GraphValidator,
    IssueCode,
    IssueSeverity,
    NodeSpec,
    ScopeRegistry,
    WorkflowGraph,
    validate_graph,
)
from flowguard.graph.registry import GMAIL_SEND, SHEETS

# === HELPER FUNCTIONS ===


def make_graph(nodes=None, edges=None, graph_id="g1", name="Test workflow") -> dict:
    """Build a raw graph payload the way the editor submits it."""
    return {
        "id": graph_id,
        "name": name,
        "nodes": nodes if nodes is not None else [],
        "edges": edges if edges is not None else [],
    }


def chain(*node_ids: str) -> list[dict]:
    return [{"source": a, "target": b} for a, b in zip(node_ids, node_ids[1:], strict=False)]


def nodes_of(*node_ids: str, node_type: str = "utility.logger") -> list[dict]:
    return [{"id": node_id, "type": node_type} for node_id in node_ids]


def is_true_cycle(cycle: list[str], edges: list[dict]) -> bool:
    """Every consecutive pair (wrapping around) must be an edge of the graph."""
    pairs = {(e["source"], e["target"]) for e in edges}
    return all((cycle[i], cycle[(i + 1) % len(cycle)]) in pairs for i in range(len(cycle)))


# === END-TO-END SCENARIOS ===


class TestEndToEnd:
    """The two reference scenarios from the workflow editor."""

    def test_cron_to_gmail_graph(self):
        """Cron trigger feeding a Gmail send validates with scopes and complexity 4."""
        graph = {
            "id": "g1",
            "name": "Daily digest",
            "nodes": [
                {"id": "a", "type": "trigger.time.cron"},
                {"id": "b", "type": "action.gmail.send"},
            ],
            "edges": [{"source": "a", "target": "b"}],
        }

        result = validate_graph(graph)

        assert result.valid is True
        assert result.errors == []
        assert GMAIL_SEND in result.required_scopes
        assert result.estimated_complexity == 4

    def test_three_node_cycle(self):
        """a→b→c→a is reported once with the nodes in cyclic order."""
        graph = make_graph(nodes_of("a", "b", "c"), chain("a", "b", "c", "a"))

        result = validate_graph(graph)

        assert result.valid is False
        cycles = result.issues(IssueCode.CIRCULAR_DEPENDENCY)
        assert len(cycles) == 1
        assert cycles[0].cycle == ["a", "b", "c"]
        assert cycles[0].message == "Circular dependency detected: a → b → c"
        assert cycles[0].path == "edges"


# === STRUCTURE ===


class TestStructure:
    """Graph-level presence and type checks."""

    @pytest.mark.parametrize("graph", [None, [], "graph"])
    def test_missing_graph(self, graph):
        """Anything that is not a mapping is a MISSING_GRAPH error."""
        result = validate_graph(graph)

        assert result.valid is False
        assert [e.code for e in result.errors] == [IssueCode.MISSING_GRAPH]
        assert result.errors[0].path == "root"

    def test_empty_mapping_reports_every_missing_part(self):
        result = validate_graph({})

        assert [e.code for e in result.errors] == [
            IssueCode.MISSING_ID,
            IssueCode.MISSING_NAME,
            IssueCode.INVALID_NODES,
            IssueCode.INVALID_EDGES,
        ]

    def test_missing_id_and_name_reported_together(self):
        """Independent problems are all reported in one result."""
        result = validate_graph({"nodes": [], "edges": []})

        codes = [e.code for e in result.errors]
        assert IssueCode.MISSING_ID in codes
        assert IssueCode.MISSING_NAME in codes

    def test_blank_name_is_missing(self):
        result = validate_graph(make_graph(name="   "))
        assert [e.code for e in result.errors] == [IssueCode.MISSING_NAME]

    def test_nodes_and_edges_must_be_lists(self):
        result = validate_graph({"id": "g", "name": "n", "nodes": {}, "edges": "a->b"})

        paths = {e.path: e.code for e in result.errors}
        assert paths["nodes"] == IssueCode.INVALID_NODES
        assert paths["edges"] == IssueCode.INVALID_EDGES

    def test_empty_graph_is_valid(self):
        result = validate_graph(make_graph())

        assert result.valid is True
        assert result.estimated_complexity == 0
        assert result.required_scopes == set()

    def test_accepts_pydantic_model(self):
        """A WorkflowGraph model validates the same as its JSON payload."""
        graph = WorkflowGraph(
            id="g1",
            name="Model graph",
            nodes=[
                NodeSpec(id="a", type="trigger.time.cron"),
                NodeSpec(id="b", type="action.sheets.append"),
            ],
            edges=[EdgeSpec(source="a", target="b")],
        )

        result = GraphValidator().validate(graph)

        assert result.valid is True
        assert result.required_scopes == {SHEETS}
        assert result.to_dict() == validate_graph(graph.to_payload()).to_dict()


class TestNodes:
    """Per-node checks."""

    def test_missing_node_id_and_type(self):
        result = validate_graph(make_graph(nodes=[{"data": {}}]))

        paths = {e.path: e.code for e in result.errors}
        assert paths["nodes[0].id"] == IssueCode.MISSING_ID
        assert paths["nodes[0].type"] == IssueCode.MISSING_TYPE

    def test_non_mapping_node_reports_missing_fields(self):
        result = validate_graph(make_graph(nodes=["a"]))

        codes = [e.code for e in result.errors]
        assert codes == [IssueCode.MISSING_ID, IssueCode.MISSING_TYPE]

    def test_duplicate_node_id_is_warning(self):
        nodes = [{"id": "a", "type": "utility.logger"}, {"id": "a", "type": "utility.delay"}]

        result = validate_graph(make_graph(nodes=nodes))

        assert result.valid is True
        assert [w.code for w in result.warnings] == [IssueCode.DUPLICATE_NODE_ID]
        assert result.warnings[0].severity == IssueSeverity.WARNING
        assert result.warnings[0].path == "nodes[1].id"


class TestEdges:
    """Per-edge reference checks."""

    def test_dangling_references(self):
        edges = [{"source": "a", "target": "ghost"}, {"source": "phantom", "target": "a"}]

        result = validate_graph(make_graph(nodes_of("a"), edges))

        paths = {e.path: e.code for e in result.errors}
        assert paths == {
            "edges[0].target": IssueCode.INVALID_TARGET,
            "edges[1].source": IssueCode.INVALID_SOURCE,
        }
        assert "ghost" in result.errors[0].message

    def test_missing_endpoints(self):
        result = validate_graph(make_graph(nodes_of("a"), [{"source": "a"}, {"target": "a"}]))

        paths = {e.path: e.code for e in result.errors}
        assert paths == {
            "edges[0].target": IssueCode.MISSING_TARGET,
            "edges[1].source": IssueCode.MISSING_SOURCE,
        }

    def test_references_not_checked_when_nodes_invalid(self):
        """With no usable node list, only the node-list error is reported."""
        result = validate_graph({"id": "g", "name": "n", "nodes": None, "edges": chain("a", "b")})

        assert [e.code for e in result.errors] == [IssueCode.INVALID_NODES]

    def test_parallel_edges_allowed(self):
        result = validate_graph(make_graph(nodes_of("a", "b"), chain("a", "b") * 2))
        assert result.valid is True

    def test_trigger_to_trigger_warning(self):
        nodes = [
            {"id": "t1", "type": "trigger.time.cron"},
            {"id": "t2", "type": "trigger.webhook"},
        ]

        result = validate_graph(make_graph(nodes, chain("t1", "t2")))

        assert result.valid is True
        assert [w.code for w in result.warnings] == [IssueCode.TRIGGER_TO_TRIGGER]
        assert result.warnings[0].path == "edges[0]"


# === SCOPES & COMPLEXITY ===


class TestScopesAndComplexity:
    """Registry lookups aggregated over the nodes."""

    def test_scopes_deduplicated_across_nodes(self):
        """Two nodes of the same type contribute their scopes once."""
        nodes = [
            {"id": "a", "type": "action.gmail.send"},
            {"id": "b", "type": "action.gmail.send"},
        ]

        result = validate_graph(make_graph(nodes))

        assert result.required_scopes == {GMAIL_SEND}
        assert result.estimated_complexity == 6

    def test_unknown_type_degrades_gracefully(self):
        """Unknown types add no scopes, weigh the default, and are not errors."""
        result = validate_graph(make_graph([{"id": "a", "type": "action.acme.launch"}]))

        assert result.valid is True
        assert result.required_scopes == set()
        assert result.estimated_complexity == 2

    def test_untyped_node_weighs_one(self):
        result = validate_graph(make_graph([{"id": "a"}]))

        assert result.valid is False
        assert result.estimated_complexity == 1

    def test_custom_registry(self):
        registry = ScopeRegistry(scopes={"x.run": ["scope:x"]}, weights={"x.run": 7})

        result = GraphValidator(registry).validate(make_graph([{"id": "a", "type": "x.run"}]))

        assert result.required_scopes == {"scope:x"}
        assert result.estimated_complexity == 7

    def test_to_dict_shape(self):
        result = validate_graph(
            make_graph(
                [{"id": "a", "type": "action.gmail.send"}, {"id": "b", "type": "sheets.write"}]
            )
        )

        data = result.to_dict()
        assert data["valid"] is True
        assert data["requiredScopes"] == sorted([GMAIL_SEND, SHEETS])
        assert data["estimatedComplexity"] == 5
        assert data["errors"] == [] and data["warnings"] == []


# === CYCLES ===


class TestCycleDetection:
    """First-cycle-found semantics of the depth-first search."""

    def test_acyclic_graph_has_no_cycle_error(self):
        edges = chain("a", "b", "c") + [{"source": "a", "target": "c"}]

        result = validate_graph(make_graph(nodes_of("a", "b", "c"), edges))

        assert result.valid is True
        assert result.errors == []

    def test_self_loop(self):
        result = validate_graph(make_graph(nodes_of("a"), [{"source": "a", "target": "a"}]))

        cycles = result.issues(IssueCode.CIRCULAR_DEPENDENCY)
        assert cycles[0].cycle == ["a"]

    def test_cycle_excludes_entry_path(self):
        """The reported cycle starts at the node that closes it, not at the root."""
        edges = chain("a", "b", "c", "d", "b")

        result = validate_graph(make_graph(nodes_of("a", "b", "c", "d"), edges))

        cycle = result.issues(IssueCode.CIRCULAR_DEPENDENCY)[0].cycle
        assert cycle == ["b", "c", "d"]
        assert is_true_cycle(cycle, edges)

    def test_only_first_cycle_reported(self):
        """Two disjoint cycles still give exactly one error."""
        edges = chain("a", "b", "a") + chain("c", "d", "c")

        result = validate_graph(make_graph(nodes_of("a", "b", "c", "d"), edges))

        cycles = result.issues(IssueCode.CIRCULAR_DEPENDENCY)
        assert len(cycles) == 1
        assert cycles[0].cycle == ["a", "b"]

    def test_dangling_edge_ignored_by_cycle_search(self):
        edges = chain("a", "ghost", "a")

        result = validate_graph(make_graph(nodes_of("a"), edges))

        assert result.issues(IssueCode.CIRCULAR_DEPENDENCY) == []
        assert result.issues(IssueCode.INVALID_TARGET)

    @pytest.mark.parametrize(
        "edges",
        [
            chain("a", "b", "c", "a"),
            chain("c", "a", "b", "c"),
            chain("a", "b") + chain("b", "c", "d", "b"),
            chain("d", "c", "b", "a", "d"),
        ],
    )
    def test_reported_cycle_is_real(self, edges):
        result = validate_graph(make_graph(nodes_of("a", "b", "c", "d"), edges))

        cycles = result.issues(IssueCode.CIRCULAR_DEPENDENCY)
        assert len(cycles) == 1
        assert is_true_cycle(cycles[0].cycle, edges)

    def test_deep_chain_does_not_hit_recursion_limit(self):
        """A 5000-node cycle is found without recursion."""
        ids = [f"n{i}" for i in range(5000)]
        edges = chain(*ids, ids[0])

        cycle = GraphValidator.find_cycle(ids, edges)

        assert cycle == ids

    def test_find_cycle_none_for_dag(self):
        assert GraphValidator.find_cycle(["a", "b"], chain("a", "b")) is None
