"""Tests for impact classification, flow graphs and statistics."""

import pytest

from scopegraph.impact_flow import ImpactDataFlowAnalyzer
from scopegraph.models import ChangeScope, DataFlow, ParsedChange, ScopedModule


@pytest.fixture
def analyzer() -> ImpactDataFlowAnalyzer:
    return ImpactDataFlowAnalyzer()


@pytest.fixture
def users_scope() -> ChangeScope:
    return ChangeScope(
        primary_modules=["users"],
        dependent_modules=[ScopedModule("orders", "orders", "direct", ["users"], "depends_on users")],
        affected_entities=["User"],
        expansion_depth=3,
    )


class TestClassification:
    """Tests for impact level classification."""

    def test_direct(self, analyzer):
        flow = DataFlow(source="users", target="profiles", entities=["User"])
        scope = ChangeScope(primary_modules=["users"], affected_entities=["User"])
        [result] = analyzer.analyze_for_impact([flow], scope, ParsedChange())
        assert result.impact_level == "direct"

    def test_indirect_via_dependent_module(self, analyzer, users_scope):
        flow = DataFlow(source="orders", target="billing", entities=["Invoice"])
        [result] = analyzer.analyze_for_impact([flow], users_scope, ParsedChange())
        assert result.impact_level == "indirect"

    def test_indirect_via_shared_entity(self, analyzer):
        flow = DataFlow(source="audit", target="archive", entities=["User"])
        scope = ChangeScope(primary_modules=["users"], affected_entities=["User"])
        assert analyzer.classify_impact_level(flow, scope) == "indirect"

    def test_cascade(self, analyzer):
        flow = DataFlow(source="analytics", target="reporting", entities=["Metric"])
        scope = ChangeScope(primary_modules=["users"], affected_entities=["User"])
        assert analyzer.classify_impact_level(flow, scope) == "cascade"

    def test_direct_takes_precedence(self, analyzer, users_scope):
        """Test a flow matching every rule is still direct."""
        flow = DataFlow(source="users", target="orders", entities=["User"])
        assert analyzer.classify_impact_level(flow, users_scope) == "direct"

    def test_primary_without_shared_entity_is_not_direct(self, analyzer):
        flow = DataFlow(source="users", target="mail", entities=["Template"])
        scope = ChangeScope(primary_modules=["users"], affected_entities=["User"])
        assert analyzer.classify_impact_level(flow, scope) == "cascade"


class TestAnnotations:
    """Tests for ids, suggested tests, operations and validation."""

    def test_ids_and_fields_preserved(self, analyzer, users_scope):
        flows = [
            DataFlow("users", "orders", ["User", "Order"], "read", "important", ["owns"]),
            DataFlow("a", "b", ["X"]),
        ]
        results = analyzer.analyze_for_impact(flows, users_scope)

        assert [r.id for r in results] == ["flow-0", "flow-1"]
        assert results[0].entities == ["User", "Order"]
        assert results[0].relationships == ["owns"]
        assert results[0].strength == "important"

    def test_suggested_tests_in_template_order(self, analyzer):
        flow = DataFlow(
            "users", "orders", ["User", "Order"], "bidirectional", "critical",
            ["deletes", "creates", "references"],
        )
        assert analyzer.generate_suggested_tests(flow) == [
            "Test cascade delete behavior from User to Order",
            "Test that User correctly creates Order with valid data",
            "Test Order reference integrity from User",
            "Test bidirectional sync between users and orders",
            "Verify critical data integrity for User -> Order flow",
        ]

    def test_suggested_tests_deduplicated(self, analyzer):
        flow = DataFlow("users", "orders", ["User", "Order"], relationships=["creates", "generates"])
        assert analyzer.generate_suggested_tests(flow) == [
            "Test that User correctly creates Order with valid data",
        ]

    def test_suggested_tests_fall_back_to_modules(self, analyzer):
        flow = DataFlow("users", "orders", [], relationships=["owns"])
        assert analyzer.generate_suggested_tests(flow) == [
            "Verify users ownership of orders persists after change",
        ]

    def test_operations(self, analyzer):
        flow = DataFlow("a", "b", ["X"], "read", relationships=["creates", "updates"])
        assert analyzer.detect_affected_operations(flow) == ["INSERT", "CREATE", "UPDATE", "PATCH", "SELECT", "READ"]

    def test_operations_write_and_delete(self, analyzer):
        flow = DataFlow("a", "b", ["X"], "write", relationships=["removes"])
        assert analyzer.detect_affected_operations(flow) == ["DELETE", "INSERT", "UPDATE"]

    def test_operations_bidirectional(self, analyzer):
        flow = DataFlow("a", "b", ["X"], "bidirectional")
        assert analyzer.detect_affected_operations(flow) == ["SELECT", "READ", "INSERT", "UPDATE"]

    @pytest.mark.parametrize("strength,level,expected", [
        ("optional", "cascade", False),
        ("critical", "cascade", True),
        ("critical", "indirect", True),
        ("optional", "direct", True),
        ("important", "indirect", True),
        ("optional", "indirect", False),
        ("important", "cascade", False),
    ])
    def test_validation_required(self, analyzer, strength, level, expected):
        flow = DataFlow("a", "b", ["X"], strength=strength)
        assert analyzer.requires_validation(flow, level) is expected

    def test_empty_input(self, analyzer):
        assert analyzer.analyze_for_impact([], ChangeScope(), ParsedChange()) == []


class TestFlowGraph:
    """Tests for build_flow_graph."""

    def _flows(self, analyzer, scope):
        return analyzer.analyze_for_impact([
            DataFlow("users", "orders", ["User", "Order"], "read", "important", ["owns"]),
            DataFlow("orders", "billing", ["Order", "Invoice"], "write", "critical", ["creates"]),
            DataFlow("analytics", "reporting", ["Metric"], "read", "optional", []),
        ], scope)

    def test_one_node_per_module_and_entity(self, analyzer, users_scope):
        graph = analyzer.build_flow_graph(self._flows(analyzer, users_scope), users_scope)
        ids = [n.id for n in graph.nodes]

        assert len(ids) == len(set(ids))
        assert set(ids) == {
            "users", "orders", "billing", "analytics", "reporting",
            "User", "Order", "Invoice", "Metric",
        }
        assert graph.node("users").type == "module"
        assert graph.node("Order").type == "entity"

    def test_node_impact(self, analyzer, users_scope):
        graph = analyzer.build_flow_graph(self._flows(analyzer, users_scope), users_scope)

        assert graph.node("users").impact_level == "direct"
        assert graph.node("orders").impact_level == "direct"
        assert graph.node("User").is_affected
        assert graph.node("User").impact_level == "direct"
        assert not graph.node("billing").is_affected
        assert graph.node("billing").impact_level is None
        assert not graph.node("Metric").is_affected

    def test_edges(self, analyzer, users_scope):
        graph = analyzer.build_flow_graph(self._flows(analyzer, users_scope), users_scope)

        assert [e.id for e in graph.edges] == ["flow-0", "flow-1", "flow-2"]
        assert graph.edges[0].label == "owns"
        assert [e.is_affected for e in graph.edges] == [True, True, False]
        assert graph.edges[1].impact_level == "indirect"

    def test_metadata(self, analyzer, users_scope):
        graph = analyzer.build_flow_graph(self._flows(analyzer, users_scope), users_scope)
        meta = graph.metadata

        assert meta.total_nodes == 9
        assert meta.total_edges == 3
        assert meta.affected_nodes == 3
        assert meta.affected_edges == 2
        # (2+2) + (3+1) + (1+0) = 9; 9 * (1 + 2/3) / 30
        assert meta.criticality_score == pytest.approx(0.5)

    def test_criticality_bounded(self, analyzer):
        scope = ChangeScope(primary_modules=["a"], affected_entities=["X"])
        flows = analyzer.analyze_for_impact([DataFlow("a", "b", ["X"], strength="critical")], scope)
        graph = analyzer.build_flow_graph(flows, scope)
        assert graph.metadata.criticality_score == 1.0

    def test_criticality_monotonic(self, analyzer):
        scope = ChangeScope(primary_modules=["a"], affected_entities=["X"])
        calm = analyzer.analyze_for_impact([DataFlow("c", "d", ["Y"])], scope)
        hot = analyzer.analyze_for_impact([DataFlow("c", "d", ["Y"]), DataFlow("a", "b", ["X"], strength="important")], scope)
        assert (
            analyzer.build_flow_graph(hot, scope).metadata.criticality_score
            > analyzer.build_flow_graph(calm, scope).metadata.criticality_score
        )

    def test_empty_graph(self, analyzer):
        graph = analyzer.build_flow_graph([], ChangeScope())
        assert graph.nodes == []
        assert graph.edges == []
        assert graph.metadata.criticality_score == 0.0


class TestStatistics:
    """Tests for get_flow_statistics."""

    def test_empty(self, analyzer):
        stats = analyzer.get_flow_statistics([])
        assert stats == {
            "total": 0,
            "by_strength": {"optional": 0, "important": 0, "critical": 0},
            "by_impact_level": {"direct": 0, "indirect": 0, "cascade": 0},
            "by_flow_type": {"read": 0, "write": 0, "bidirectional": 0},
            "requires_validation": 0,
            "total_suggested_tests": 0,
        }

    def test_counts(self, analyzer, users_scope):
        flows = analyzer.analyze_for_impact([
            DataFlow("users", "orders", ["User", "Order"], "read", "important", ["owns"]),
            DataFlow("orders", "billing", ["Order", "Invoice"], "write", "critical", ["creates"]),
            DataFlow("analytics", "reporting", ["Metric"], "read", "optional", []),
        ], users_scope)
        stats = analyzer.get_flow_statistics(flows)

        assert stats["total"] == 3
        assert stats["by_impact_level"] == {"direct": 1, "indirect": 1, "cascade": 1}
        assert stats["by_strength"]["critical"] == 1
        assert stats["by_flow_type"]["read"] == 2
        assert stats["requires_validation"] == 2
        assert stats["total_suggested_tests"] == 3
