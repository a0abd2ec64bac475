"""JSON-backed project knowledge implementing every scope provider.

Expected layout::

    {
      "modules": [{"id": "users", "name": "users", "paths": ["src/users/**"]}],
      "links":   [{"source": "orders", "target": "users", "type": "depends_on"}],
      "specs":   [{"id": "spec-1", "title": "...", "module": "users",
                   "dependencies": [{"spec": "spec-2", "module": "orders",
                                     "relationship": "depends_on"}]}],
      "imports": {"src/orders/order.py": ["src/users/user.py"]},
      "flows":   [{"from": "users", "to": "orders", "entities": ["User"],
                   "flowType": "read", "strength": "important",
                   "relationships": ["owns"]}]
    }

Malformed entries are skipped with a warning rather than failing the load.
"""

from __future__ import annotations

import fnmatch
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import DataFlow
from .providers import (
    IncomingLink,
    ModuleInfo,
    ModuleLinks,
    OutgoingLink,
    SpecDependency,
    SpecInfo,
)

logger = logging.getLogger(__name__)


class ProjectKnowledge:
    """In-memory module/spec/import/flow knowledge for one project."""

    def __init__(
        self,
        modules: Optional[List[ModuleInfo]] = None,
        links: Optional[List[Dict[str, str]]] = None,
        specs: Optional[List[SpecInfo]] = None,
        spec_dependencies: Optional[Dict[str, List[SpecDependency]]] = None,
        imports: Optional[Dict[str, List[str]]] = None,
        flows: Optional[List[DataFlow]] = None,
    ) -> None:
        self._modules: Dict[str, ModuleInfo] = {m.id: m for m in modules or []}
        self._links = list(links or [])
        self._specs: Dict[str, SpecInfo] = {s.id: s for s in specs or []}
        self._spec_deps = dict(spec_dependencies or {})
        self._imports = {src: list(dsts) for src, dsts in (imports or {}).items()}
        self._flows = list(flows or [])

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path) -> "ProjectKnowledge":
        """Load knowledge from a JSON file.

        Raises:
            FileNotFoundError: if *path* does not exist.
            ValueError: if the file is not valid JSON or not a JSON object.
        """
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ProjectKnowledge":
        if not isinstance(payload, dict):
            raise ValueError("Project knowledge must be a JSON object")
        modules: List[ModuleInfo] = []
        for raw in payload.get("modules", []):
            if not raw.get("id"):
                logger.warning("Skipping module without id: %r", raw)
                continue
            paths = raw.get("paths", [])
            if isinstance(paths, str):
                paths = [p.strip() for p in paths.split(",") if p.strip()]
            modules.append(ModuleInfo(id=raw["id"], name=raw.get("name", raw["id"]), paths=paths))

        links: List[Dict[str, str]] = []
        for raw in payload.get("links", []):
            if not raw.get("source") or not raw.get("target"):
                logger.warning("Skipping malformed module link: %r", raw)
                continue
            links.append({
                "source": raw["source"],
                "target": raw["target"],
                "type": raw.get("type", "depends_on"),
            })

        specs: List[SpecInfo] = []
        spec_deps: Dict[str, List[SpecDependency]] = {}
        for raw in payload.get("specs", []):
            if not raw.get("id"):
                logger.warning("Skipping spec without id: %r", raw)
                continue
            specs.append(SpecInfo(id=raw["id"], title=raw.get("title", ""), module_id=raw.get("module")))
            spec_deps[raw["id"]] = [
                SpecDependency(
                    spec_id=dep.get("spec", ""),
                    module_id=dep.get("module"),
                    relationship=dep.get("relationship", "depends_on"),
                )
                for dep in raw.get("dependencies", [])
            ]

        flows: List[DataFlow] = []
        for raw in payload.get("flows", []):
            try:
                flows.append(DataFlow.from_dict(raw))
            except ValueError as exc:
                logger.warning("Skipping invalid data flow %r: %s", raw, exc)

        return cls(
            modules=modules,
            links=links,
            specs=specs,
            spec_dependencies=spec_deps,
            imports=payload.get("imports", {}),
            flows=flows,
        )

    # ------------------------------------------------------------------
    # ModuleKnowledgeProvider
    # ------------------------------------------------------------------

    def get_module(self, module_id: str) -> Optional[ModuleInfo]:
        return self._modules.get(module_id)

    def get_module_by_name(self, name: str) -> Optional[ModuleInfo]:
        for module in self._modules.values():
            if module.name == name or module.id == name:
                return module
        return None

    def list_modules(self) -> List[ModuleInfo]:
        return list(self._modules.values())

    def detect_module_from_path(self, file_path: str) -> Optional[ModuleInfo]:
        normalized = _normalize_path(file_path)
        for module in self._modules.values():
            for pattern in module.paths:
                pattern = _normalize_path(pattern)
                if fnmatch.fnmatch(normalized, pattern):
                    return module
                prefix = pattern.split("*", 1)[0].rstrip("/")
                if prefix and (normalized == prefix or normalized.startswith(prefix + "/")):
                    return module
        return None

    def get_module_links(self, module_id: str) -> ModuleLinks:
        links = ModuleLinks()
        for link in self._links:
            if link["source"] == module_id:
                links.outgoing.append(OutgoingLink(target_module_id=link["target"], link_type=link["type"]))
            if link["target"] == module_id:
                links.incoming.append(IncomingLink(source_module_id=link["source"], link_type=link["type"]))
        return links

    # ------------------------------------------------------------------
    # SpecProvider
    # ------------------------------------------------------------------

    def get_spec(self, spec_id: str) -> Optional[SpecInfo]:
        return self._specs.get(spec_id)

    def get_spec_dependencies(self, spec_id: str) -> List[SpecDependency]:
        return list(self._spec_deps.get(spec_id, []))

    # ------------------------------------------------------------------
    # ImportGraphProvider
    # ------------------------------------------------------------------

    def get_imports(self, file_path: str) -> List[str]:
        return list(self._imports.get(file_path, []))

    def get_importers(self, file_path: str) -> List[str]:
        return [src for src, dsts in self._imports.items() if file_path in dsts]

    # ------------------------------------------------------------------
    # DataFlowProvider
    # ------------------------------------------------------------------

    def get_entity_flows(self, entity_name: str) -> List[DataFlow]:
        return [flow for flow in self._flows if entity_name in flow.entities]

    def all_flows(self) -> List[DataFlow]:
        return list(self._flows)


def _normalize_path(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path
