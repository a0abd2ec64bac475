"""Tests for rule-based risk assessment."""

import pytest

from scopegraph.models import (
    ChangeInput,
    ChangeScope,
    ImpactDataFlow,
    ParsedChange,
    ParsedOperation,
    ScopedFile,
    ScopedModule,
)
from scopegraph.risk import DEFAULT_RISK_RULES, RiskAssessor, RiskRule


def _flow(strength="optional", level="cascade", validation=False) -> ImpactDataFlow:
    return ImpactDataFlow(
        id="flow-0", source="a", target="b", entities=["Order"], flow_type="write",
        strength=strength, relationships=[], impact_level=level, validation_required=validation,
    )


def _assess(change=None, parsed=None, scope=None, flows=()):
    return RiskAssessor().assess(
        change or ChangeInput(description="x"),
        parsed or ParsedChange(change_type="bugfix"),
        scope or ChangeScope(),
        list(flows),
    )


def _rule_ids(risks):
    return [risk.rule_id for risk in risks]


class TestDefaultRules:
    """Tests for each built-in rule."""

    def test_quiet_change_has_no_risks(self):
        assert _assess() == []

    def test_schema_operation(self):
        parsed = ParsedChange(
            operations=[ParsedOperation("modify", "orders table schema")], change_type="bugfix",
        )
        assert "R001" in _rule_ids(_assess(parsed=parsed))

    def test_migration_with_schema_keyword(self):
        risks = _assess(
            change=ChangeInput(description="x", change_type="migration"),
            parsed=ParsedChange(keywords=["column"], change_type="migration"),
        )
        assert _rule_ids(risks) == ["R001"]

    def test_modifying_critical_validated_flow(self):
        parsed = ParsedChange(operations=[ParsedOperation("modify", "totals")], change_type="bugfix")
        risks = _assess(parsed=parsed, flows=[_flow("critical", "indirect", True)])
        assert _rule_ids(risks) == ["R001"]

    def test_breaking_api_change(self):
        risks = _assess(
            parsed=ParsedChange(operations=[ParsedOperation("delete", "legacy handler")], change_type="bugfix"),
            scope=ChangeScope(primary_files=["src/api/orders.py"]),
        )
        assert _rule_ids(risks) == ["R002"]

    def test_adding_api_files_is_not_breaking(self):
        risks = _assess(
            parsed=ParsedChange(operations=[ParsedOperation("add", "endpoint")], change_type="bugfix"),
            scope=ChangeScope(primary_files=["src/api/orders.py"]),
        )
        assert "R002" not in _rule_ids(risks)

    @pytest.mark.parametrize("parsed,scope", [
        (ParsedChange(entities=["AuthToken"], change_type="bugfix"), ChangeScope()),
        (ParsedChange(keywords=["password"], change_type="bugfix"), ChangeScope()),
        (ParsedChange(change_type="bugfix"), ChangeScope(primary_files=["src/login/views.py"])),
        (ParsedChange(change_type="bugfix"), ChangeScope(primary_modules=["auth"])),
    ])
    def test_security_sensitive(self, parsed, scope):
        risks = _assess(parsed=parsed, scope=scope)
        assert _rule_ids(risks) == ["R003"]
        assert risks[0].is_blocking is True

    def test_cross_module(self):
        scope = ChangeScope(
            primary_modules=["users"],
            dependent_modules=[
                ScopedModule("orders", "orders", "direct"),
                ScopedModule("billing", "billing", "indirect"),
            ],
        )
        assert _rule_ids(_assess(scope=scope)) == ["R004"]

    def test_data_flow_disruption_needs_direct_critical_flow(self):
        assert _rule_ids(_assess(flows=[_flow("critical", "direct", True)])) == ["R005"]
        assert _assess(flows=[_flow("important", "direct", True)]) == []

    def test_performance_from_many_files(self):
        scope = ChangeScope(affected_files=[ScopedFile(f"src/f{i}.py", "direct") for i in range(11)])
        assert _rule_ids(_assess(scope=scope)) == ["R006"]

    def test_performance_from_database_operation(self):
        parsed = ParsedChange(
            operations=[ParsedOperation("modify", "slow query")], keywords=["cache"], change_type="bugfix",
        )
        assert _rule_ids(_assess(parsed=parsed)) == ["R006"]

    def test_feature_without_tests(self):
        assert _rule_ids(_assess(parsed=ParsedChange(change_type="feature"))) == ["R007"]
        assert _assess(parsed=ParsedChange(keywords=["test"], change_type="feature")) == []

    def test_explicit_change_type_wins(self):
        risks = _assess(
            change=ChangeInput(description="x", change_type="feature"),
            parsed=ParsedChange(change_type="bugfix"),
        )
        assert _rule_ids(risks) == ["R007"]

    def test_deletion_with_dependents(self):
        risks = _assess(
            change=ChangeInput(description="x", change_type="deletion"),
            parsed=ParsedChange(change_type="deletion"),
            scope=ChangeScope(dependent_modules=[ScopedModule("orders", "orders", "direct")]),
        )
        assert _rule_ids(risks) == ["R008"]

    def test_deletion_without_dependents(self):
        risks = _assess(
            change=ChangeInput(description="x", change_type="deletion"),
            parsed=ParsedChange(change_type="deletion"),
        )
        assert risks == []


class TestRiskDetails:
    """Tests for risk ordering, descriptions and statistics."""

    def test_sorted_by_severity(self):
        risks = _assess(
            parsed=ParsedChange(keywords=["token"], change_type="feature"),
            flows=[_flow("critical", "direct", True)],
        )
        assert _rule_ids(risks) == ["R003", "R005", "R007"]
        assert [r.severity for r in risks] == ["critical", "high", "medium"]

    def test_description_lists_affected_areas(self):
        scope = ChangeScope(
            primary_modules=["users"],
            primary_files=["src/users/models.py"],
            dependent_modules=[
                ScopedModule("orders", "orders", "direct"),
                ScopedModule("billing", "billing", "indirect"),
            ],
        )
        risks = _assess(parsed=ParsedChange(entities=["User"], change_type="feature"), scope=scope)
        risk = risks[0]

        assert risk.id == "risk-R004"
        assert risk.affected_areas == ["module:users", "depends:orders", "models.py", "entity:User"]
        assert risk.description == (
            "Cross-Module Impact detected. Affected areas: module:users, depends:orders, "
            "models.py and 1 more. Consider addressing this during implementation."
        )
        assert risk.mitigation_applied is False

    def test_statistics(self):
        assessor = RiskAssessor()
        risks = _assess(
            parsed=ParsedChange(keywords=["token"], change_type="feature"),
            flows=[_flow("critical", "direct", True)],
        )
        stats = assessor.get_statistics(risks)

        assert stats["total"] == 3
        assert stats["blocking"] == 1
        assert stats["by_severity"] == {"critical": 1, "high": 1, "medium": 1, "low": 0}
        assert stats["by_category"]["data_corruption"] == 1
        assert stats["by_category"]["deployment"] == 0


class TestCustomRules:
    """Tests for adding and removing rules."""

    def test_add_and_remove_rule(self):
        assessor = RiskAssessor()
        rule = RiskRule(
            "C001", "Release Freeze", "deployment", "low",
            lambda ctx: "release" in ctx.parsed.keywords,
            "Wait for the freeze to end.",
        )
        assessor.add_rule(rule)

        risks = assessor.assess(
            ChangeInput(description="x"), ParsedChange(keywords=["release"], change_type="bugfix"),
            ChangeScope(), [],
        )
        assert _rule_ids(risks) == ["C001"]
        assert len(assessor.rules) == len(DEFAULT_RISK_RULES) + 1

        assert assessor.remove_rule("C001") is True
        assert assessor.remove_rule("R001") is False
        assert len(assessor.rules) == len(DEFAULT_RISK_RULES)

    def test_add_rule_rejects_unknown_category(self):
        with pytest.raises(ValueError):
            RiskAssessor().add_rule(RiskRule("C002", "Odd", "vibes", "low", lambda ctx: True, ""))

    def test_replaces_default_rules(self):
        assessor = RiskAssessor(rules=[])
        assert assessor.assess(ChangeInput(description="x"), ParsedChange(), ChangeScope(), []) == []
