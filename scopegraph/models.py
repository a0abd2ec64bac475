"""Core data models shared by scope detection, flow analysis and the reference store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

ChangeType = Literal["feature", "bugfix", "refactor", "migration", "deletion"]
ImpactLevel = Literal["direct", "indirect", "cascade"]
FlowType = Literal["read", "write", "bidirectional"]
FlowStrength = Literal["optional", "important", "critical"]

CHANGE_TYPES = ("feature", "bugfix", "refactor", "migration", "deletion")
OPERATION_TYPES = ("add", "modify", "delete", "refactor", "migrate")
IMPACT_LEVELS = ("direct", "indirect", "cascade")
FLOW_TYPES = ("read", "write", "bidirectional")
FLOW_STRENGTHS = ("optional", "important", "critical")

ENTITY_TYPES = (
    "task",
    "session",
    "knowledge",
    "capability",
    "impact",
    "ticket",
    "incident",
    "lesson",
    "rule",
    "skill",
)

RELATIONSHIPS = (
    "converts_to",       # ticket -> task
    "implemented_by",    # task -> session
    "analyzed_by",       # task -> impact
    "requires_context",  # task -> knowledge/capability
    "governed_by",       # task -> rule
    "creates",           # session -> knowledge
    "discovers",         # session -> incident
    "describes",         # knowledge -> capability
    "codified_from",     # knowledge -> lesson
    "originates_from",   # lesson -> incident
    "generates",         # lesson -> rule
    "enables",
    "depends_on",
    "feeds_into",
    "blocks",            # task -> task
    "related_to",
    "mentions",          # inline [[type:id]]
)

DIRECTIONS = ("forward", "reverse", "both")

RiskSeverity = Literal["critical", "high", "medium", "low"]

RISK_SEVERITIES = ("critical", "high", "medium", "low")
RISK_CATEGORIES = (
    "data_corruption",
    "breaking_change",
    "performance",
    "security",
    "compatibility",
    "testing",
    "deployment",
)
VALIDATION_CATEGORIES = ("test", "data_flow", "api", "migration", "manual", "review")
VALIDATION_STATUSES = ("pending", "running", "passed", "failed", "skipped")


def _check_choice(kind: str, value: str, choices: tuple) -> None:
    if value not in choices:
        raise ValueError(f"Invalid {kind} {value!r}; expected one of: {', '.join(choices)}")


# ===================================================================
# Change input
# ===================================================================

@dataclass
class ChangeInput:
    """A change request: free-text description plus optional explicit targets."""
    description: str
    target_modules: List[str] = field(default_factory=list)
    target_files: List[str] = field(default_factory=list)
    spec_id: Optional[str] = None
    change_type: Optional[ChangeType] = None

    def __post_init__(self):
        if self.change_type is not None:
            _check_choice("change type", self.change_type, CHANGE_TYPES)


@dataclass
class ParsedOperation:
    type: str
    target: str
    description: str = ""

    def __post_init__(self):
        _check_choice("operation type", self.type, OPERATION_TYPES)


@dataclass
class ParsedChange:
    """Structured view of a change (entities, operations, keywords)."""
    entities: List[str] = field(default_factory=list)
    operations: List[ParsedOperation] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    change_type: ChangeType = "feature"
    confidence: float = 0.0

    def __post_init__(self):
        _check_choice("change type", self.change_type, CHANGE_TYPES)


# ===================================================================
# Scope
# ===================================================================

@dataclass
class ScopedModule:
    module_id: str
    module_name: str
    impact_level: ImpactLevel
    dependency_path: List[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class ScopedFile:
    file_path: str
    impact_level: ImpactLevel
    module_id: Optional[str] = None
    dependency_path: List[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class ChangeScope:
    """Modules, files and entities judged relevant to a change."""
    primary_modules: List[str] = field(default_factory=list)
    primary_files: List[str] = field(default_factory=list)
    dependent_modules: List[ScopedModule] = field(default_factory=list)
    affected_files: List[ScopedFile] = field(default_factory=list)
    affected_entities: List[str] = field(default_factory=list)
    expansion_depth: int = 0

    def dependent_module(self, module_id: str) -> Optional[ScopedModule]:
        for dep in self.dependent_modules:
            if dep.module_id == module_id:
                return dep
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ===================================================================
# Data flows
# ===================================================================

@dataclass
class DataFlow:
    """A directed relationship between two modules over shared entities."""
    source: str
    target: str
    entities: List[str] = field(default_factory=list)
    flow_type: FlowType = "read"
    strength: FlowStrength = "optional"
    relationships: List[str] = field(default_factory=list)

    def __post_init__(self):
        _check_choice("flow type", self.flow_type, FLOW_TYPES)
        _check_choice("flow strength", self.strength, FLOW_STRENGTHS)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DataFlow":
        """Build a flow from provider JSON (``from``/``to``/``flowType`` keys accepted)."""
        return cls(
            source=payload.get("from", payload.get("source", "")),
            target=payload.get("to", payload.get("target", "")),
            entities=list(payload.get("entities", [])),
            flow_type=payload.get("flowType", payload.get("flow_type", "read")),
            strength=payload.get("strength", "optional"),
            relationships=list(payload.get("relationships", [])),
        )


@dataclass
class ImpactDataFlow:
    """A :class:`DataFlow` annotated with its impact on a change scope."""
    id: str
    source: str
    target: str
    entities: List[str]
    flow_type: FlowType
    strength: FlowStrength
    relationships: List[str]
    impact_level: ImpactLevel
    affected_operations: List[str] = field(default_factory=list)
    validation_required: bool = False
    suggested_tests: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ===================================================================
# Flow graph
# ===================================================================

@dataclass
class FlowNode:
    id: str
    label: str
    type: Literal["module", "entity"]
    is_affected: bool = False
    impact_level: Optional[ImpactLevel] = None


@dataclass
class FlowEdge:
    id: str
    source: str
    target: str
    label: str
    flow_type: FlowType
    strength: FlowStrength
    is_affected: bool = False
    impact_level: Optional[ImpactLevel] = None


@dataclass
class FlowGraphMetadata:
    total_nodes: int = 0
    total_edges: int = 0
    affected_nodes: int = 0
    affected_edges: int = 0
    criticality_score: float = 0.0


@dataclass
class FlowGraph:
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)
    metadata: FlowGraphMetadata = field(default_factory=FlowGraphMetadata)

    def node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MermaidDiagram:
    type: Literal["flowchart", "erDiagram"]
    code: str
    title: str

    def __str__(self) -> str:
        return self.code


# ===================================================================
# Entity references
# ===================================================================

@dataclass
class EntityReference:
    """A typed, directed edge between two tracked project entities."""
    id: str
    source_type: str
    source_id: str
    target_type: str
    target_id: str
    relationship: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: int = 0
    created_by: Optional[str] = None

    @property
    def link_key(self) -> tuple:
        return (self.source_type, self.source_id, self.target_type, self.target_id, self.relationship)

    def __str__(self) -> str:
        return (
            f"{self.source_type}:{self.source_id} -{self.relationship}-> "
            f"{self.target_type}:{self.target_id}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReferenceInput:
    """Validated payload for creating an entity reference."""
    source_type: str
    source_id: str
    target_type: str
    target_id: str
    relationship: str = "related_to"
    metadata: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None

    def __post_init__(self):
        _check_choice("entity type", self.source_type, ENTITY_TYPES)
        _check_choice("entity type", self.target_type, ENTITY_TYPES)
        _check_choice("relationship", self.relationship, RELATIONSHIPS)
        if not self.source_id or not self.target_id:
            raise ValueError("Entity references need both a source id and a target id")


# ===================================================================
# Risks and validations
# ===================================================================

@dataclass
class IdentifiedRisk:
    """A risk rule that fired for a change."""
    id: str
    rule_id: str
    name: str
    category: str
    severity: RiskSeverity
    description: str
    affected_areas: List[str] = field(default_factory=list)
    mitigation: str = ""
    is_blocking: bool = False
    mitigation_applied: bool = False

    def __post_init__(self):
        _check_choice("risk category", self.category, RISK_CATEGORIES)
        _check_choice("risk severity", self.severity, RISK_SEVERITIES)


@dataclass
class ValidationItem:
    """One checklist entry to clear before (or while) implementing a change."""
    id: str
    title: str
    description: str
    category: str
    status: str = "pending"
    is_blocking: bool = False
    auto_verifiable: bool = False
    verify_command: Optional[str] = None
    expected_pattern: Optional[str] = None
    risk_id: Optional[str] = None
    data_flow_id: Optional[str] = None
    module_id: Optional[str] = None

    def __post_init__(self):
        _check_choice("validation category", self.category, VALIDATION_CATEGORIES)
        _check_choice("validation status", self.status, VALIDATION_STATUSES)


# ===================================================================
# Reports
# ===================================================================

@dataclass
class ImpactReport:
    """Everything produced by one end-to-end impact analysis."""
    change: ChangeInput
    parsed: ParsedChange
    scope: ChangeScope
    flows: List[ImpactDataFlow] = field(default_factory=list)
    graph: FlowGraph = field(default_factory=FlowGraph)
    statistics: Dict[str, Any] = field(default_factory=dict)
    risks: List[IdentifiedRisk] = field(default_factory=list)
    validations: List[ValidationItem] = field(default_factory=list)

    @property
    def validation_flows(self) -> List[ImpactDataFlow]:
        return [flow for flow in self.flows if flow.validation_required]

    @property
    def blocking_risks(self) -> List[IdentifiedRisk]:
        return [risk for risk in self.risks if risk.is_blocking]

    @property
    def blocking_validations(self) -> List[ValidationItem]:
        return [item for item in self.validations if item.is_blocking]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
