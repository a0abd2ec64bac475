"""Validation checklist generation from risks, scope and data flows."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from .config_manager import load_validation_config
from .models import (
    VALIDATION_CATEGORIES,
    ChangeScope,
    IdentifiedRisk,
    ImpactDataFlow,
    ValidationItem,
)
from .risk import touches_api
from .scope_detector import entity_to_module_name

logger = logging.getLogger(__name__)

TEST_PASS_PATTERN = r"(passed|PASSED|0 failed)"

# risk category -> (title, description, validation category, blocking override, auto-verifiable)
# {name}, {description} and {mitigation} come from the risk.
RISK_VALIDATIONS: Dict[str, tuple] = {
    "data_corruption": (
        "Verify data integrity after {name}",
        "{description}\n\nMitigation: {mitigation}",
        "manual", None, False,
    ),
    "breaking_change": (
        "Check backward compatibility for {name}",
        "Verify that existing functionality is not broken.\n\n{description}",
        "test", None, False,
    ),
    "security": (
        "Security review: {name}",
        "{description}\n\nRequired checks:\n- No credential exposure\n"
        "- No injection vulnerabilities\n- Proper authentication/authorization",
        "review", True, False,
    ),
    "performance": (
        "Performance check: {name}",
        "{description}\n\nVerify no significant performance degradation.",
        "test", False, False,
    ),
    "testing": (
        "Add tests for new functionality",
        "{description}\n\nEnsure adequate test coverage for changes.",
        "test", None, False,
    ),
    "compatibility": (
        "Integration test for {name}",
        "{description}\n\nVerify integration across affected modules.",
        "test", None, True,
    ),
}

_DEFAULT_RISK_VALIDATION = ("Review: {name}", "{description}", "manual", None, False)


@dataclass
class ValidationGeneratorConfig:
    include_module_tests: bool = True
    include_data_flow_validations: bool = True
    include_api_validations: bool = True
    test_command: str = "pytest"
    module_path_prefix: str = "tests/"

    @classmethod
    def from_config(cls, **overrides: Any) -> "ValidationGeneratorConfig":
        """Build from the ``[validation]`` config section; non-``None`` overrides win."""
        settings = load_validation_config()
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(
            include_module_tests=bool(settings["include_module_tests"]),
            include_data_flow_validations=bool(settings["include_data_flow_validations"]),
            include_api_validations=bool(settings["include_api_validations"]),
            test_command=str(settings["test_command"]),
            module_path_prefix=str(settings["module_path_prefix"]),
        )


class ValidationGenerator:
    """Build a deduplicated validation checklist for one analysed change.

    Items come, in order, from identified risks, module tests for primary
    and direct dependent modules, data flows flagged for validation, and
    API files in scope.  Ids are ``val-<index>`` in final checklist order.
    """

    def __init__(self, config: Optional[ValidationGeneratorConfig] = None):
        self.config = config or ValidationGeneratorConfig()

    def generate(
        self,
        scope: ChangeScope,
        flows: Sequence[ImpactDataFlow],
        risks: Sequence[IdentifiedRisk],
    ) -> List[ValidationItem]:
        items = self.risk_validations(risks)
        if self.config.include_module_tests:
            items.extend(self.module_test_validations(scope))
        if self.config.include_data_flow_validations:
            items.extend(self.data_flow_validations(flows))
        if self.config.include_api_validations:
            items.extend(self.api_validations(scope))

        checklist = _deduplicate(items)
        for index, item in enumerate(checklist):
            item.id = f"val-{index}"
        logger.debug("Generated %d validation item(s)", len(checklist))
        return checklist

    def risk_validations(self, risks: Sequence[IdentifiedRisk]) -> List[ValidationItem]:
        items: List[ValidationItem] = []
        for risk in risks:
            title, description, category, blocking, auto = RISK_VALIDATIONS.get(
                risk.category, _DEFAULT_RISK_VALIDATION
            )
            fields = {"name": risk.name, "description": risk.description, "mitigation": risk.mitigation}
            items.append(ValidationItem(
                id="",
                title=title.format(**fields),
                description=description.format(**fields),
                category=category,
                is_blocking=risk.is_blocking if blocking is None else blocking,
                auto_verifiable=auto,
                verify_command=f"{self.config.test_command} -m integration" if auto else None,
                risk_id=risk.id,
            ))
        return items

    def module_test_validations(self, scope: ChangeScope) -> List[ValidationItem]:
        items: List[ValidationItem] = []
        tested = set()

        for module_id in scope.primary_modules:
            if module_id in tested:
                continue
            tested.add(module_id)
            items.append(ValidationItem(
                id="",
                title=f"Run {module_id} module tests",
                description=f"Execute all tests for the {module_id} module to ensure no regressions.",
                category="test",
                is_blocking=True,
                auto_verifiable=True,
                verify_command=self._test_command(module_id),
                expected_pattern=TEST_PASS_PATTERN,
                module_id=module_id,
            ))

        for dep in scope.dependent_modules:
            if dep.impact_level != "direct" or dep.module_id in tested:
                continue
            tested.add(dep.module_id)
            items.append(ValidationItem(
                id="",
                title=f"Run {dep.module_name} dependent tests",
                description=f"Test dependent module {dep.module_name}. Reason: {dep.reason}",
                category="test",
                is_blocking=False,
                auto_verifiable=True,
                verify_command=self._test_command(dep.module_id),
                expected_pattern=TEST_PASS_PATTERN,
                module_id=dep.module_id,
            ))
        return items

    def data_flow_validations(self, flows: Sequence[ImpactDataFlow]) -> List[ValidationItem]:
        """One manual check per flow flagged ``validation_required``; blocking when critical."""
        items: List[ValidationItem] = []
        for flow in flows:
            if not flow.validation_required:
                continue
            items.append(ValidationItem(
                id="",
                title=f"Verify {' -> '.join(flow.entities) or 'module'} data flow from {flow.source} to {flow.target}",
                description=(
                    f"Manually verify that data flows correctly from {flow.source} to {flow.target}.\n\n"
                    f"Relationships: {', '.join(flow.relationships)}\n"
                    f"Suggested tests: {', '.join(flow.suggested_tests) or 'None specified'}"
                ),
                category="data_flow",
                is_blocking=flow.strength == "critical",
                auto_verifiable=False,
                data_flow_id=flow.id,
            ))
        return items

    def api_validations(self, scope: ChangeScope) -> List[ValidationItem]:
        paths = list(scope.primary_files) + [
            scoped.file_path for scoped in scope.affected_files if scoped.impact_level == "direct"
        ]
        api_files = [path for path in dict.fromkeys(paths) if touches_api(path)]
        if not api_files:
            return []

        listing = "\n".join(f"- {path}" for path in api_files)
        return [
            ValidationItem(
                id="",
                title="Test affected API endpoints",
                description=f"Verify that all affected API endpoints work correctly.\n\nAffected files:\n{listing}",
                category="api",
                is_blocking=True,
                auto_verifiable=False,
            ),
            ValidationItem(
                id="",
                title="Run API integration tests",
                description="Execute API integration tests to verify endpoint functionality.",
                category="api",
                is_blocking=True,
                auto_verifiable=True,
                verify_command=f"{self.config.test_command} -m api",
                expected_pattern=TEST_PASS_PATTERN,
            ),
        ]

    def get_statistics(self, items: Sequence[ValidationItem]) -> Dict[str, Any]:
        by_category = dict.fromkeys(VALIDATION_CATEGORIES, 0)
        for item in items:
            by_category[item.category] += 1
        return {
            "total": len(items),
            "by_category": by_category,
            "blocking": sum(1 for item in items if item.is_blocking),
            "auto_verifiable": sum(1 for item in items if item.auto_verifiable),
            "pending": sum(1 for item in items if item.status == "pending"),
            "passed": sum(1 for item in items if item.status == "passed"),
            "failed": sum(1 for item in items if item.status == "failed"),
        }

    def _test_command(self, module_id: str) -> str:
        return f"{self.config.test_command} {self.config.module_path_prefix}{entity_to_module_name(module_id)}"


def _deduplicate(items: List[ValidationItem]) -> List[ValidationItem]:
    """Merge items with the same category and normalised title.

    The longer description wins; the merged item is blocking if either was.
    """
    merged: Dict[str, ValidationItem] = {}
    for item in items:
        key = f"{item.category}:{re.sub(r'[^a-z0-9]', '', item.title.lower())}"
        existing = merged.get(key)
        if existing is None:
            merged[key] = item
            continue
        keep = item if len(item.description) > len(existing.description) else existing
        merged[key] = replace(keep, is_blocking=existing.is_blocking or item.is_blocking)
    return list(merged.values())
