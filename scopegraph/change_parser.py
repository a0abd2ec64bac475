"""Heuristic parser turning a change request into entities, operations and keywords."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set

from .models import ChangeInput, ParsedChange, ParsedOperation

_ENTITY_PATTERNS = [
    re.compile(r"\b([A-Z][a-z]+(?:[A-Z][a-z]+)*)\b"),
    re.compile(r"(?:entity|model|table|schema|record)\s+['\"]?(\w+)['\"]?", re.IGNORECASE),
    re.compile(r"(?:collection|database|db)\.(\w+)", re.IGNORECASE),
]

_ENTITY_EXCLUDES = {
    # language / runtime types
    "String", "Number", "Boolean", "Array", "Object", "Function", "Promise",
    "Date", "Error", "Map", "Set", "Buffer", "Stream", "None", "True", "False",
    # action words
    "Add", "Create", "Update", "Delete", "Remove", "Get", "List", "Find",
    "Search", "Filter", "Sort", "Validate", "Check", "Process", "Fix",
    "Refactor", "Migrate", "Implement", "Move", "Rename",
    # prefixes / suffixes
    "Api", "App", "Web", "Test", "Mock", "Stub", "Fake",
    # sentence starters
    "This", "That", "The", "And", "For", "With", "From", "Into", "When", "Make",
    # framework terms
    "Django", "Flask", "React", "Vue", "Angular", "Express", "Node",
    "Component", "Service", "Controller", "Repository", "Module",
}

_OPERATION_PATTERNS: Dict[str, List[re.Pattern]] = {
    "add": [
        re.compile(r"\b(?:add|create|implement|introduce|build|develop)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
        re.compile(r"\bnew\s+(\w+)", re.IGNORECASE),
    ],
    "modify": [
        re.compile(r"\b(?:update|modify|change|edit|alter|adjust|enhance|improve)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
        re.compile(r"\b(?:fix|patch|correct)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
    ],
    "delete": [
        re.compile(r"\b(?:delete|remove|drop|eliminate|deprecate)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
    ],
    "refactor": [
        re.compile(r"\b(?:refactor|restructure|reorganize|optimize|simplify)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
        re.compile(r"\b(?:move|extract|split|merge|consolidate)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
    ],
    "migrate": [
        re.compile(r"\b(?:migrate|upgrade|convert|transform)\s+(.+?)(?:\.|,|$)", re.IGNORECASE),
    ],
}

_OPERATION_KEYWORDS: Dict[str, List[str]] = {
    "add": ["add", "create", "implement", "introduce", "build", "develop", "new", "feature"],
    "modify": ["update", "modify", "change", "edit", "alter", "adjust", "enhance", "improve", "fix", "patch"],
    "delete": ["delete", "remove", "drop", "eliminate", "deprecate", "clean"],
    "refactor": ["refactor", "restructure", "reorganize", "optimize", "simplify", "move", "extract", "split", "merge"],
    "migrate": ["migrate", "migration", "upgrade", "convert", "transform", "schema"],
}

# (keywords, weight) per change type
_CHANGE_TYPE_KEYWORDS = {
    "feature": (["feature", "add", "new", "implement", "create", "build", "develop", "introduce"], 1.0),
    "bugfix": (["fix", "bug", "issue", "error", "crash", "broken", "wrong", "incorrect", "patch"], 1.2),
    "refactor": (["refactor", "restructure", "reorganize", "optimize", "clean", "simplify", "improve", "enhance"], 1.0),
    "migration": (["migrate", "migration", "upgrade", "database", "schema", "convert", "transform"], 1.3),
    "deletion": (["delete", "remove", "drop", "deprecate", "eliminate", "clean up", "remove unused"], 1.1),
}

_OPERATION_CHANGE_SCORES = {
    "add": {"feature": 1.0},
    "modify": {"feature": 0.5, "bugfix": 0.5},
    "delete": {"deletion": 1.0},
    "refactor": {"refactor": 1.0},
    "migrate": {"migration": 1.5},
}

_STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need", "it", "its",
    "this", "that", "these", "those", "then", "than", "so", "if", "when",
    "where", "how", "what", "which", "who", "whom", "whose",
}

_SOURCE_SUFFIXES = {".py", ".pyi", ".ts", ".tsx", ".js", ".jsx", ".json", ".md", ".toml", ".yaml", ".yml"}


class ChangeParser:
    """Extract entities, operations, keywords and a change type from free text."""

    def parse(self, change: ChangeInput) -> ParsedChange:
        text = self._gather_text(change)
        entities = self._extract_entities(text)
        operations = self._detect_operations(text)
        keywords = self._extract_keywords(text)
        change_type = change.change_type or self._infer_change_type(text, operations)
        confidence = self._confidence(entities, operations, keywords)
        return ParsedChange(
            entities=entities,
            operations=operations,
            keywords=keywords,
            change_type=change_type,
            confidence=confidence,
        )

    def parse_from_task(self, title: str, description: Optional[str] = None) -> ParsedChange:
        return self.parse(ChangeInput(description=f"{title}. {description or ''}".strip()))

    def parse_from_spec(self, title: str, content: str, module: Optional[str] = None) -> ParsedChange:
        return self.parse(ChangeInput(
            description=f"{title}. {content}",
            target_modules=[module] if module else [],
        ))

    # ------------------------------------------------------------------

    def _gather_text(self, change: ChangeInput) -> str:
        parts: List[str] = []
        if change.description:
            parts.append(change.description)
        for file_path in change.target_files:
            path = PurePosixPath(file_path.replace("\\", "/"))
            parts.append(path.stem if path.suffix in _SOURCE_SUFFIXES else path.name)
        parts.extend(change.target_modules)
        return " ".join(parts)

    def _extract_entities(self, text: str) -> List[str]:
        entities: List[str] = []
        for pattern in _ENTITY_PATTERNS:
            for match in pattern.finditer(text):
                entity = match.group(1)
                if (
                    entity
                    and len(entity) > 2
                    and entity[0].isupper()
                    and entity not in _ENTITY_EXCLUDES
                    and entity not in entities
                ):
                    entities.append(entity)
        return entities

    def _detect_operations(self, text: str) -> List[ParsedOperation]:
        operations: List[ParsedOperation] = []
        seen_targets: Set[str] = set()

        for op_type, patterns in _OPERATION_PATTERNS.items():
            for pattern in patterns:
                for match in pattern.finditer(text):
                    target = (match.group(1) or "").strip()
                    if len(target) > 2 and target.lower() not in seen_targets:
                        seen_targets.add(target.lower())
                        operations.append(ParsedOperation(
                            type=op_type, target=target, description=match.group(0).strip(),
                        ))

        if not operations:
            inferred = self._infer_operation(text)
            if inferred is not None:
                operations.append(inferred)
        return operations

    def _infer_operation(self, text: str) -> Optional[ParsedOperation]:
        lowered = text.lower()
        for op_type, keywords in _OPERATION_KEYWORDS.items():
            for keyword in keywords:
                if keyword in lowered:
                    return ParsedOperation(
                        type=op_type,
                        target="inferred",
                        description=f'Inferred {op_type} operation from keyword "{keyword}"',
                    )
        return None

    def _extract_keywords(self, text: str) -> List[str]:
        keywords: List[str] = []
        words = re.sub(r"[^a-z0-9\s_-]", " ", text.lower()).split()
        camel_parts = [w.lower() for w in re.findall(r"[a-z]+(?=[A-Z])|[A-Z][a-z]+", text)]
        for word in words + camel_parts:
            if len(word) > 2 and word not in _STOP_WORDS and word not in keywords:
                keywords.append(word)
        return keywords

    def _infer_change_type(self, text: str, operations: List[ParsedOperation]) -> str:
        lowered = text.lower()
        scores = {change_type: 0.0 for change_type in _CHANGE_TYPE_KEYWORDS}

        for change_type, (keywords, weight) in _CHANGE_TYPE_KEYWORDS.items():
            for keyword in keywords:
                if keyword in lowered:
                    scores[change_type] += weight

        for op in operations:
            for change_type, bonus in _OPERATION_CHANGE_SCORES[op.type].items():
                scores[change_type] += bonus

        best, best_score = "feature", 0.0
        for change_type, score in scores.items():
            if score > best_score:
                best, best_score = change_type, score
        return best

    def _confidence(
        self,
        entities: List[str],
        operations: List[ParsedOperation],
        keywords: List[str],
    ) -> float:
        confidence = 0.5
        if entities:
            confidence += min(len(entities) * 0.1, 0.2)
        if operations:
            confidence += min(len(operations) * 0.1, 0.2)
            if any(op.target != "inferred" for op in operations):
                confidence += 0.05
        if len(keywords) > 5:
            confidence += 0.05
        return min(round(confidence, 2), 1.0)
