"""Impact analysis over data flows.

Each :class:`DataFlow` touching a change scope is classified by impact level,
annotated with the database operations it implies and a list of suggested
tests, and flagged when manual validation is required.  The annotated flows
can then be turned into a :class:`FlowGraph` for diagrams and statistics.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import graph_export
from .models import (
    FLOW_STRENGTHS,
    FLOW_TYPES,
    IMPACT_LEVELS,
    ChangeScope,
    DataFlow,
    FlowEdge,
    FlowGraph,
    FlowGraphMetadata,
    FlowNode,
    ImpactDataFlow,
    MermaidDiagram,
    ParsedChange,
)

logger = logging.getLogger(__name__)

# (relationship pattern, template); {source}/{target} are the first two entities
TEST_TEMPLATES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"creates?|generates?", re.IGNORECASE),
     "Test that {source} correctly creates {target} with valid data"),
    (re.compile(r"owns?|contains?", re.IGNORECASE),
     "Verify {source} ownership of {target} persists after change"),
    (re.compile(r"updates?|modifies?", re.IGNORECASE),
     "Verify {source} updates to {target} propagate correctly"),
    (re.compile(r"deletes?|removes?", re.IGNORECASE),
     "Test cascade delete behavior from {source} to {target}"),
    (re.compile(r"references?", re.IGNORECASE),
     "Test {target} reference integrity from {source}"),
]

RELATIONSHIP_OPERATIONS: List[Tuple[re.Pattern, List[str]]] = [
    (re.compile(r"creates?|generates?", re.IGNORECASE), ["INSERT", "CREATE"]),
    (re.compile(r"updates?|modifies?", re.IGNORECASE), ["UPDATE", "PATCH"]),
    (re.compile(r"deletes?|removes?", re.IGNORECASE), ["DELETE"]),
]

FLOW_TYPE_OPERATIONS: Dict[str, List[str]] = {
    "read": ["SELECT", "READ"],
    "write": ["INSERT", "UPDATE"],
    "bidirectional": ["SELECT", "READ", "INSERT", "UPDATE"],
}

STRENGTH_WEIGHTS = {"critical": 3, "important": 2, "optional": 1}
LEVEL_WEIGHTS = {"direct": 2, "indirect": 1, "cascade": 0}


class ImpactDataFlowAnalyzer:
    """Classify data flows against a :class:`ChangeScope`."""

    def analyze_for_impact(
        self,
        flows: Sequence[DataFlow],
        scope: ChangeScope,
        parsed: Optional[ParsedChange] = None,
    ) -> List[ImpactDataFlow]:
        """Annotate every flow with impact information, preserving order.

        ``parsed`` is accepted for callers that have it; classification only
        depends on the scope.
        """
        results: List[ImpactDataFlow] = []
        for index, flow in enumerate(flows):
            impact_level = self.classify_impact_level(flow, scope)
            results.append(ImpactDataFlow(
                id=f"flow-{index}",
                source=flow.source,
                target=flow.target,
                entities=list(flow.entities),
                flow_type=flow.flow_type,
                strength=flow.strength,
                relationships=list(flow.relationships),
                impact_level=impact_level,
                affected_operations=self.detect_affected_operations(flow),
                validation_required=self.requires_validation(flow, impact_level),
                suggested_tests=self.generate_suggested_tests(flow),
            ))
        logger.debug("Analyzed %d flow(s)", len(results))
        return results

    def classify_impact_level(self, flow: DataFlow, scope: ChangeScope) -> str:
        shares_entity = any(entity in scope.affected_entities for entity in flow.entities)
        touches_primary = flow.source in scope.primary_modules or flow.target in scope.primary_modules
        touches_dependent = any(
            dep.module_id in (flow.source, flow.target) for dep in scope.dependent_modules
        )

        if touches_primary and shares_entity:
            return "direct"
        if touches_dependent or shares_entity:
            return "indirect"
        return "cascade"

    def generate_suggested_tests(self, flow: DataFlow) -> List[str]:
        source = flow.entities[0] if flow.entities else flow.source
        target = flow.entities[1] if len(flow.entities) > 1 else flow.target

        tests: Dict[str, None] = {}
        for relationship in flow.relationships:
            for pattern, template in TEST_TEMPLATES:
                if pattern.search(relationship):
                    tests[template.format(source=source, target=target)] = None

        if flow.flow_type == "bidirectional":
            tests[f"Test bidirectional sync between {flow.source} and {flow.target}"] = None
        if flow.strength == "critical":
            tests[f"Verify critical data integrity for {' -> '.join(flow.entities)} flow"] = None
        return list(tests)

    def detect_affected_operations(self, flow: DataFlow) -> List[str]:
        operations: Dict[str, None] = {}
        for relationship in flow.relationships:
            for pattern, ops in RELATIONSHIP_OPERATIONS:
                if pattern.search(relationship):
                    operations.update(dict.fromkeys(ops))
        operations.update(dict.fromkeys(FLOW_TYPE_OPERATIONS.get(flow.flow_type, [])))
        return list(operations)

    def requires_validation(self, flow: DataFlow, impact_level: str) -> bool:
        if flow.strength == "critical":
            return True
        if impact_level == "direct":
            return True
        return impact_level == "indirect" and flow.strength == "important"

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def build_flow_graph(self, flows: Sequence[ImpactDataFlow], scope: ChangeScope) -> FlowGraph:
        nodes: Dict[str, FlowNode] = {}
        edges: List[FlowEdge] = []
        primary = set(scope.primary_modules)
        dependents = {dep.module_id: dep for dep in scope.dependent_modules}
        affected_entities = set(scope.affected_entities)

        for flow in flows:
            for module_id in (flow.source, flow.target):
                if module_id in nodes:
                    continue
                if module_id in primary:
                    level = "direct"
                elif module_id in dependents:
                    level = dependents[module_id].impact_level
                elif module_id in affected_entities:
                    level = flow.impact_level
                else:
                    level = None
                nodes[module_id] = FlowNode(
                    id=module_id, label=module_id, type="module",
                    is_affected=level is not None, impact_level=level,
                )

            for entity in flow.entities:
                if entity in nodes:
                    continue
                if entity in affected_entities:
                    level = flow.impact_level
                elif entity in primary:
                    level = "direct"
                elif entity in dependents:
                    level = dependents[entity].impact_level
                else:
                    level = None
                nodes[entity] = FlowNode(
                    id=entity, label=entity, type="entity",
                    is_affected=level is not None, impact_level=level,
                )

            edges.append(FlowEdge(
                id=flow.id,
                source=flow.source,
                target=flow.target,
                label=", ".join(flow.relationships),
                flow_type=flow.flow_type,
                strength=flow.strength,
                is_affected=nodes[flow.source].is_affected or nodes[flow.target].is_affected,
                impact_level=flow.impact_level,
            ))

        affected_edges = sum(1 for edge in edges if edge.is_affected)
        metadata = FlowGraphMetadata(
            total_nodes=len(nodes),
            total_edges=len(edges),
            affected_nodes=sum(1 for node in nodes.values() if node.is_affected),
            affected_edges=affected_edges,
            criticality_score=self._criticality_score(flows, affected_edges),
        )
        return FlowGraph(nodes=list(nodes.values()), edges=edges, metadata=metadata)

    def _criticality_score(self, flows: Sequence[ImpactDataFlow], affected_edges: int) -> float:
        if not flows:
            return 0.0
        score = sum(
            STRENGTH_WEIGHTS.get(flow.strength, 1) + LEVEL_WEIGHTS.get(flow.impact_level, 0)
            for flow in flows
        )
        score *= 1 + affected_edges / len(flows)
        return min(1.0, score / (10 * len(flows)))

    # ------------------------------------------------------------------
    # Diagrams and statistics
    # ------------------------------------------------------------------

    def generate_flowchart_diagram(self, graph: FlowGraph, title: str = "Data Flow Impact") -> MermaidDiagram:
        return graph_export.generate_flowchart_diagram(graph, title)

    def generate_er_diagram(self, graph: FlowGraph, title: str = "Entity Relationships") -> MermaidDiagram:
        return graph_export.generate_er_diagram(graph, title)

    def get_flow_statistics(self, flows: Sequence[ImpactDataFlow]) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "total": len(flows),
            "by_strength": dict.fromkeys(FLOW_STRENGTHS, 0),
            "by_impact_level": dict.fromkeys(IMPACT_LEVELS, 0),
            "by_flow_type": dict.fromkeys(FLOW_TYPES, 0),
            "requires_validation": 0,
            "total_suggested_tests": 0,
        }
        for flow in flows:
            stats["by_strength"][flow.strength] += 1
            stats["by_impact_level"][flow.impact_level] += 1
            stats["by_flow_type"][flow.flow_type] += 1
            if flow.validation_required:
                stats["requires_validation"] += 1
            stats["total_suggested_tests"] += len(flow.suggested_tests)
        return stats
