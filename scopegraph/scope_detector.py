"""Scope detection: which modules, files and entities a change touches.

Starting from explicit targets (or modules inferred from the parsed change),
the detector expands the blast radius over whichever provider graphs are
configured:

- module links (incoming links and outgoing ``depends_on`` links),
- spec dependencies,
- file imports (both importers and imports),
- data flows (entities sharing a flow with a changed entity).

Every expansion is a bounded breadth-first search.  One hop away is a
``direct`` impact; anything further (up to ``max_depth``) is ``indirect``.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from .config_manager import load_scope_config
from .models import ChangeInput, ChangeScope, ParsedChange, ScopedFile, ScopedModule
from .providers import (
    DataFlowProvider,
    ImportGraphProvider,
    ModuleKnowledgeProvider,
    SpecProvider,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


@dataclass
class ScopeDetectorConfig:
    max_depth: int = 3
    include_indirect: bool = True
    expand_imports: bool = True
    expand_data_flows: bool = True

    @classmethod
    def from_config(cls, **overrides: Any) -> "ScopeDetectorConfig":
        """Build from the ``[scope]`` config section; non-``None`` overrides win."""
        settings = load_scope_config()
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(
            max_depth=int(settings["max_depth"]),
            include_indirect=bool(settings["include_indirect"]),
            expand_imports=bool(settings["expand_imports"]),
            expand_data_flows=bool(settings["expand_data_flows"]),
        )

    @property
    def effective_depth(self) -> int:
        """Traversal bound actually applied (1 when indirect results are disabled)."""
        depth = max(0, self.max_depth)
        return depth if self.include_indirect else min(depth, 1)


def entity_to_module_name(entity: str) -> str:
    """Convert a PascalCase entity name to a kebab-case module name.

    ``User`` -> ``user``, ``OrderItem`` -> ``order-item``, ``HTTPClient`` -> ``http-client``.
    """
    name = _CAMEL_BOUNDARY_RE.sub("-", entity.strip()).lower()
    name = re.sub(r"[\s_]+", "-", name)
    return re.sub(r"-+", "-", name).strip("-")


class ScopeDetector:
    """Compute a :class:`ChangeScope` for a change using optional providers.

    A missing provider silently disables its expansion step, so a detector
    with no providers returns only the explicit targets and parsed entities.
    """

    def __init__(
        self,
        config: Optional[ScopeDetectorConfig] = None,
        module_provider: Optional[ModuleKnowledgeProvider] = None,
        spec_provider: Optional[SpecProvider] = None,
        import_provider: Optional[ImportGraphProvider] = None,
        data_flow_provider: Optional[DataFlowProvider] = None,
    ):
        self.config = config or ScopeDetectorConfig()
        self.module_provider = module_provider
        self.spec_provider = spec_provider
        self.import_provider = import_provider
        self.data_flow_provider = data_flow_provider

    def detect(self, change: ChangeInput, parsed: ParsedChange) -> ChangeScope:
        primary_modules, primary_files = self._identify_primary(change, parsed)
        dependent_modules = self._expand_module_dependencies(primary_modules, change.spec_id)
        affected_files = self._expand_file_dependencies(primary_files)
        affected_entities = self._identify_affected_entities(parsed.entities)

        logger.debug(
            "Scope: %d primary module(s), %d primary file(s), %d dependent module(s), "
            "%d affected file(s), %d entit(ies)",
            len(primary_modules), len(primary_files), len(dependent_modules),
            len(affected_files), len(affected_entities),
        )
        return ChangeScope(
            primary_modules=primary_modules,
            primary_files=primary_files,
            dependent_modules=dependent_modules,
            affected_files=affected_files,
            affected_entities=affected_entities,
            expansion_depth=self.config.effective_depth,
        )

    # ------------------------------------------------------------------
    # Primary targets
    # ------------------------------------------------------------------

    def _identify_primary(self, change: ChangeInput, parsed: ParsedChange) -> Tuple[List[str], List[str]]:
        modules: Dict[str, None] = {}
        files: Dict[str, None] = {}

        for module_id in change.target_modules:
            if module_id:
                modules[module_id] = None

        for file_path in change.target_files:
            if not file_path:
                continue
            files[file_path] = None
            if self.module_provider is not None:
                module = self.module_provider.detect_module_from_path(file_path)
                if module is not None:
                    modules[module.id] = None

        if change.spec_id and self.spec_provider is not None:
            spec = self.spec_provider.get_spec(change.spec_id)
            if spec is not None and spec.module_id:
                modules[spec.module_id] = None

        if not modules and self.module_provider is not None:
            for entity in parsed.entities:
                module = self._module_for_entity(entity)
                if module is not None:
                    modules[module] = None
            for keyword in parsed.keywords:
                module = self.module_provider.get_module_by_name(keyword)
                if module is not None:
                    modules[module.id] = None

        return list(modules), list(files)

    def _module_for_entity(self, entity: str) -> Optional[str]:
        name = entity_to_module_name(entity)
        if not name:
            return None
        for candidate in (name, f"{name}s"):
            module = self.module_provider.get_module_by_name(candidate)
            if module is not None:
                return module.id
        return None

    # ------------------------------------------------------------------
    # Module expansion
    # ------------------------------------------------------------------

    def _expand_module_dependencies(
        self,
        primary_modules: List[str],
        spec_id: Optional[str],
    ) -> List[ScopedModule]:
        max_depth = self.config.effective_depth
        dependents: List[ScopedModule] = []
        visited: Set[str] = set(primary_modules)
        queue: Deque[Tuple[str, int, List[str], str]] = deque(
            (module_id, 0, [], "primary") for module_id in primary_modules
        )

        if spec_id and self.spec_provider is not None and max_depth >= 1:
            for dep in self.spec_provider.get_spec_dependencies(spec_id):
                if not dep.module_id:
                    logger.debug("Spec dependency %s of %s has no module; skipped", dep.spec_id, spec_id)
                    continue
                if dep.module_id in visited:
                    continue
                visited.add(dep.module_id)
                if not self._is_known_module(dep.module_id):
                    continue
                queue.append((
                    dep.module_id, 1, [f"spec:{spec_id}"],
                    f"Spec {dep.relationship}: {dep.spec_id}",
                ))

        while queue:
            module_id, depth, path, reason = queue.popleft()
            if depth > 0:
                dependents.append(ScopedModule(
                    module_id=module_id,
                    module_name=self._module_name(module_id),
                    impact_level="direct" if depth == 1 else "indirect",
                    dependency_path=path,
                    reason=reason,
                ))

            if depth >= max_depth or self.module_provider is None:
                continue

            links = self.module_provider.get_module_links(module_id)
            neighbours: List[Tuple[str, str]] = []
            for link in links.incoming:
                neighbours.append((link.source_module_id, f"{link.link_type} {module_id}"))
            for link in links.outgoing:
                if link.link_type == "depends_on":
                    neighbours.append((link.target_module_id, f"dependency of {module_id}"))

            for neighbour, why in neighbours:
                if not neighbour or neighbour in visited:
                    continue
                visited.add(neighbour)
                if not self._is_known_module(neighbour):
                    continue
                queue.append((neighbour, depth + 1, path + [module_id], why))

        return dependents

    def _is_known_module(self, module_id: str) -> bool:
        if self.module_provider is None:
            return True
        if self.module_provider.get_module(module_id) is None:
            logger.debug("Link to unknown module %r skipped", module_id)
            return False
        return True

    def _module_name(self, module_id: str) -> str:
        if self.module_provider is not None:
            module = self.module_provider.get_module(module_id)
            if module is not None:
                return module.name
        return module_id

    # ------------------------------------------------------------------
    # File expansion
    # ------------------------------------------------------------------

    def _expand_file_dependencies(self, primary_files: List[str]) -> List[ScopedFile]:
        if not self.config.expand_imports or self.import_provider is None:
            return []

        max_depth = self.config.effective_depth
        affected: List[ScopedFile] = []
        visited: Set[str] = set(primary_files)
        queue: Deque[Tuple[str, int, List[str], str]] = deque(
            (file_path, 0, [], "primary") for file_path in primary_files
        )

        while queue:
            file_path, depth, path, reason = queue.popleft()
            if depth > 0:
                affected.append(ScopedFile(
                    file_path=file_path,
                    impact_level="direct" if depth == 1 else "indirect",
                    module_id=self._module_for_path(file_path),
                    dependency_path=path,
                    reason=reason,
                ))

            if depth >= max_depth:
                continue

            name = file_path.rsplit("/", 1)[-1]
            neighbours = [(f, f"imports {name}") for f in self.import_provider.get_importers(file_path)]
            neighbours += [(f, f"imported by {name}") for f in self.import_provider.get_imports(file_path)]
            for neighbour, why in neighbours:
                if not neighbour or neighbour in visited:
                    continue
                visited.add(neighbour)
                queue.append((neighbour, depth + 1, path + [file_path], why))

        return affected

    def _module_for_path(self, file_path: str) -> Optional[str]:
        if self.module_provider is None:
            return None
        module = self.module_provider.detect_module_from_path(file_path)
        return module.id if module is not None else None

    # ------------------------------------------------------------------
    # Entity expansion
    # ------------------------------------------------------------------

    def _identify_affected_entities(self, primary_entities: List[str]) -> List[str]:
        entities: Dict[str, None] = dict.fromkeys(e for e in primary_entities if e)

        if not self.config.expand_data_flows or self.data_flow_provider is None:
            return list(entities)

        for entity in primary_entities:
            for flow in self.data_flow_provider.get_entity_flows(entity):
                for related in getattr(flow, "entities", None) or []:
                    if related:
                        entities[related] = None
        return list(entities)
