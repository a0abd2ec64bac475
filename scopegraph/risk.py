"""Rule-based risk assessment for a detected change scope.

Each :class:`RiskRule` is a named predicate over a :class:`RiskContext`
(the change, its parsed view, the scope and the classified data flows).
Rules that match become :class:`IdentifiedRisk` entries, sorted with the
most severe first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence

from .models import (
    RISK_CATEGORIES,
    RISK_SEVERITIES,
    ChangeInput,
    ChangeScope,
    IdentifiedRisk,
    ImpactDataFlow,
    ParsedChange,
)

logger = logging.getLogger(__name__)

API_PATH_MARKERS = ("/api/", "/routes/", "/endpoints/", ".controller.", ".route.")

SECURITY_KEYWORDS = (
    "auth", "authentication", "authorization", "login", "logout",
    "password", "token", "session", "permission", "role", "access",
    "security", "credential", "oauth", "jwt", "secret", "encrypt",
)

_SCHEMA_TARGET_WORDS = ("schema", "database", "migration")
_SCHEMA_KEYWORDS = {"schema", "migration", "database", "table", "column", "index"}
_API_KEYWORDS = {"api", "endpoint", "route", "controller", "request", "response"}
_PERFORMANCE_KEYWORDS = {
    "query", "database", "cache", "index", "bulk", "batch",
    "loop", "iteration", "recursive", "sync", "async",
}
_TEST_KEYWORDS = {"test", "spec", "coverage", "unit", "integration", "e2e"}

SEVERITY_ORDER = {severity: rank for rank, severity in enumerate(RISK_SEVERITIES)}

_SEVERITY_MESSAGES = {
    "critical": "This requires immediate attention and approval before proceeding.",
    "high": "This should be addressed before implementation.",
    "medium": "Consider addressing this during implementation.",
    "low": "This is informational and can be addressed if time permits.",
}


@dataclass
class RiskContext:
    change: ChangeInput
    parsed: ParsedChange
    scope: ChangeScope
    flows: Sequence[ImpactDataFlow]

    @property
    def change_type(self) -> str:
        """Explicit change type if given, otherwise the parsed one."""
        return self.change.change_type or self.parsed.change_type

    def has_operation(self, *types: str) -> bool:
        return any(op.type in types for op in self.parsed.operations)

    def has_keyword(self, keywords) -> bool:
        return any(keyword in keywords for keyword in self.parsed.keywords)


@dataclass
class RiskRule:
    id: str
    name: str
    category: str
    severity: str
    condition: Callable[[RiskContext], bool]
    mitigation: str
    is_blocking: bool = False


def touches_api(path: str) -> bool:
    return any(marker in path for marker in API_PATH_MARKERS)


def _mentions_security(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in SECURITY_KEYWORDS)


def _schema_change(ctx: RiskContext) -> bool:
    critical_flow = any(f.strength == "critical" and f.validation_required for f in ctx.flows)
    schema_operation = any(
        op.type == "migrate" or any(word in op.target.lower() for word in _SCHEMA_TARGET_WORDS)
        for op in ctx.parsed.operations
    )
    return (
        (critical_flow and ctx.has_operation("modify"))
        or schema_operation
        or (ctx.change_type == "migration" and ctx.has_keyword(_SCHEMA_KEYWORDS))
    )


def _breaking_api_change(ctx: RiskContext) -> bool:
    modifying = ctx.change_type == "refactor" or ctx.has_operation("modify", "delete", "refactor")
    affects_api = any(touches_api(path) for path in ctx.scope.primary_files)
    return modifying and (affects_api or ctx.has_keyword(_API_KEYWORDS))


def _security_sensitive(ctx: RiskContext) -> bool:
    return (
        any(_mentions_security(entity) for entity in ctx.parsed.entities)
        or ctx.has_keyword(SECURITY_KEYWORDS)
        or any(_mentions_security(path) for path in ctx.scope.primary_files)
        or any(_mentions_security(module) for module in ctx.scope.primary_modules)
    )


def _cross_module(ctx: RiskContext) -> bool:
    return len(ctx.scope.primary_modules) + len(ctx.scope.dependent_modules) > 2


def _data_flow_disruption(ctx: RiskContext) -> bool:
    return any(f.strength == "critical" and f.impact_level == "direct" for f in ctx.flows)


def _performance(ctx: RiskContext) -> bool:
    database_operation = any(
        "database" in op.target.lower() or "query" in op.target.lower()
        for op in ctx.parsed.operations
    )
    many_files = len(ctx.scope.affected_files) > 10
    return (ctx.has_keyword(_PERFORMANCE_KEYWORDS) and database_operation) or many_files


def _test_coverage_gap(ctx: RiskContext) -> bool:
    new_functionality = ctx.change_type == "feature" or ctx.has_operation("add")
    return new_functionality and not ctx.has_keyword(_TEST_KEYWORDS)


def _deletion_with_dependents(ctx: RiskContext) -> bool:
    deleting = ctx.change_type == "deletion" or ctx.has_operation("delete")
    has_dependents = bool(ctx.scope.dependent_modules or ctx.scope.affected_files)
    return deleting and has_dependents


DEFAULT_RISK_RULES: List[RiskRule] = [
    RiskRule(
        "R001", "Database Schema Change", "data_corruption", "critical", _schema_change,
        "Create migration scripts with rollback capability. Test on staging data first.",
        is_blocking=True,
    ),
    RiskRule(
        "R002", "Breaking API Change", "breaking_change", "high", _breaking_api_change,
        "Add API versioning or maintain backward compatibility. Document breaking changes.",
    ),
    RiskRule(
        "R003", "Security-Sensitive Change", "security", "critical", _security_sensitive,
        "Security review required. Test authentication flows. Verify no credential exposure.",
        is_blocking=True,
    ),
    RiskRule(
        "R004", "Cross-Module Impact", "compatibility", "medium", _cross_module,
        "Coordinate with other module owners. Run integration tests across affected modules.",
    ),
    RiskRule(
        "R005", "Data Flow Disruption", "data_corruption", "high", _data_flow_disruption,
        "Verify data integrity after change. Add data validation checks.",
    ),
    RiskRule(
        "R006", "Potential Performance Impact", "performance", "medium", _performance,
        "Run performance benchmarks. Consider caching strategies.",
    ),
    RiskRule(
        "R007", "Test Coverage Gap", "testing", "medium", _test_coverage_gap,
        "Add unit tests for new functionality. Update existing tests if behavior changes.",
    ),
    RiskRule(
        "R008", "Deletion with Dependencies", "breaking_change", "high", _deletion_with_dependents,
        "Update or remove all dependent code before deletion. Check for runtime references.",
        is_blocking=True,
    ),
]


class RiskAssessor:
    """Evaluate built-in and custom risk rules against one analysed change."""

    def __init__(self, rules: Optional[Sequence[RiskRule]] = None):
        self._rules = list(DEFAULT_RISK_RULES if rules is None else rules)
        self._custom_rules: List[RiskRule] = []

    @property
    def rules(self) -> List[RiskRule]:
        return self._rules + self._custom_rules

    def add_rule(self, rule: RiskRule) -> None:
        if rule.category not in RISK_CATEGORIES:
            raise ValueError(f"Invalid risk category {rule.category!r}")
        if rule.severity not in RISK_SEVERITIES:
            raise ValueError(f"Invalid risk severity {rule.severity!r}")
        self._custom_rules.append(rule)

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a custom rule; built-in rules cannot be removed."""
        for index, rule in enumerate(self._custom_rules):
            if rule.id == rule_id:
                del self._custom_rules[index]
                return True
        return False

    def assess(
        self,
        change: ChangeInput,
        parsed: ParsedChange,
        scope: ChangeScope,
        flows: Sequence[ImpactDataFlow],
    ) -> List[IdentifiedRisk]:
        ctx = RiskContext(change=change, parsed=parsed, scope=scope, flows=flows)
        risks = [self._create_risk(rule, ctx) for rule in self.rules if rule.condition(ctx)]
        risks.sort(key=lambda risk: SEVERITY_ORDER[risk.severity])
        logger.debug("Risk assessment matched %d rule(s)", len(risks))
        return risks

    def _create_risk(self, rule: RiskRule, ctx: RiskContext) -> IdentifiedRisk:
        areas = affected_areas(ctx)
        return IdentifiedRisk(
            id=f"risk-{rule.id}",
            rule_id=rule.id,
            name=rule.name,
            category=rule.category,
            severity=rule.severity,
            description=_describe(rule, areas),
            affected_areas=areas,
            mitigation=rule.mitigation,
            is_blocking=rule.is_blocking,
        )

    def get_statistics(self, risks: Sequence[IdentifiedRisk]) -> Dict[str, object]:
        by_severity = dict.fromkeys(RISK_SEVERITIES, 0)
        by_category = dict.fromkeys(RISK_CATEGORIES, 0)
        for risk in risks:
            by_severity[risk.severity] += 1
            by_category[risk.category] += 1
        return {
            "total": len(risks),
            "by_severity": by_severity,
            "by_category": by_category,
            "blocking": sum(1 for risk in risks if risk.is_blocking),
        }


def affected_areas(ctx: RiskContext) -> List[str]:
    """Primary modules, direct dependents, primary file names and parsed entities."""
    areas: Dict[str, None] = {}
    areas.update(dict.fromkeys(f"module:{m}" for m in ctx.scope.primary_modules))
    areas.update(dict.fromkeys(
        f"depends:{dep.module_name}"
        for dep in ctx.scope.dependent_modules
        if dep.impact_level == "direct"
    ))
    areas.update(dict.fromkeys(PurePosixPath(f).name for f in ctx.scope.primary_files))
    areas.update(dict.fromkeys(f"entity:{e}" for e in ctx.parsed.entities))
    return list(areas)


def _describe(rule: RiskRule, areas: List[str]) -> str:
    listed = ", ".join(areas[:3])
    more = f" and {len(areas) - 3} more" if len(areas) > 3 else ""
    return f"{rule.name} detected. Affected areas: {listed}{more}. {_SEVERITY_MESSAGES[rule.severity]}"
