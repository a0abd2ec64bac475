"""Orchestrator wiring the parser, scope detector, flow analyzer, risk assessor
and validation generator together."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .change_parser import ChangeParser
from .impact_flow import ImpactDataFlowAnalyzer
from .models import ChangeInput, ChangeScope, DataFlow, ImpactReport, ParsedChange
from .risk import RiskAssessor
from .scope_detector import ScopeDetector, ScopeDetectorConfig
from .validation import ValidationGenerator

logger = logging.getLogger(__name__)


class ImpactOrchestrator:
    """Runs parse -> detect -> analyze flows -> assess risks -> build checklist.

    ``knowledge`` is any object implementing the provider protocols it wants
    to take part in (usually a :class:`~scopegraph.knowledge.ProjectKnowledge`).
    When it also offers ``all_flows()`` every declared flow is classified
    against the scope; otherwise only flows of the affected entities are.
    """

    def __init__(
        self,
        knowledge: Optional[Any] = None,
        config: Optional[ScopeDetectorConfig] = None,
        parser: Optional[ChangeParser] = None,
        risk_assessor: Optional[RiskAssessor] = None,
        validation_generator: Optional[ValidationGenerator] = None,
    ):
        self.knowledge = knowledge
        self.parser = parser or ChangeParser()
        self.detector = ScopeDetector(
            config=config,
            module_provider=_provider(knowledge, "get_module_links"),
            spec_provider=_provider(knowledge, "get_spec_dependencies"),
            import_provider=_provider(knowledge, "get_importers"),
            data_flow_provider=_provider(knowledge, "get_entity_flows"),
        )
        self.flow_catalog = _provider(knowledge, "all_flows")
        self.analyzer = ImpactDataFlowAnalyzer()
        self.risk_assessor = risk_assessor or RiskAssessor()
        self.validation_generator = validation_generator or ValidationGenerator()

    def analyze(self, change: ChangeInput, parsed: Optional[ParsedChange] = None) -> ImpactReport:
        if parsed is None:
            parsed = self.parser.parse(change)
        scope = self.detector.detect(change, parsed)
        flows = self.candidate_flows(scope)
        impact_flows = self.analyzer.analyze_for_impact(flows, scope, parsed)
        graph = self.analyzer.build_flow_graph(impact_flows, scope)
        risks = self.risk_assessor.assess(change, parsed, scope, impact_flows)
        validations = self.validation_generator.generate(scope, impact_flows, risks)
        logger.info(
            "Impact analysis: %d primary module(s), %d dependent(s), %d flow(s), "
            "%d risk(s), %d validation(s), criticality %.2f",
            len(scope.primary_modules), len(scope.dependent_modules), len(impact_flows),
            len(risks), len(validations), graph.metadata.criticality_score,
        )
        return ImpactReport(
            change=change,
            parsed=parsed,
            scope=scope,
            flows=impact_flows,
            graph=graph,
            statistics=self.analyzer.get_flow_statistics(impact_flows),
            risks=risks,
            validations=validations,
        )

    def candidate_flows(self, scope: ChangeScope) -> List[DataFlow]:
        """Flows to classify: the full catalog if available, else the affected entities' flows."""
        if self.flow_catalog is not None:
            return _unique_flows(self.flow_catalog.all_flows())
        return self.gather_flows(scope.affected_entities)

    def gather_flows(self, entities: List[str]) -> List[DataFlow]:
        """Flows touching any of *entities*, deduplicated in first-seen order."""
        provider = self.detector.data_flow_provider
        if provider is None:
            return []
        return _unique_flows(
            flow for entity in entities for flow in provider.get_entity_flows(entity)
        )


def _flow_key(flow: DataFlow) -> Tuple:
    return (
        flow.source,
        flow.target,
        tuple(flow.entities),
        flow.flow_type,
        flow.strength,
        tuple(flow.relationships),
    )


def _unique_flows(flows) -> List[DataFlow]:
    """Drop exact repeats only; flows differing in any field are kept."""
    seen: Dict[Tuple, None] = {}
    unique: List[DataFlow] = []
    for flow in flows:
        key = _flow_key(flow)
        if key in seen:
            continue
        seen[key] = None
        unique.append(flow)
    return unique


def _provider(knowledge: Any, method: str) -> Optional[Any]:
    return knowledge if knowledge is not None and hasattr(knowledge, method) else None
