"""Provider interfaces consumed by the scope detector.

Each provider is optional.  Implementations are duck-typed against these
protocols; :class:`~scopegraph.knowledge.ProjectKnowledge` implements all
four from a JSON file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from .models import DataFlow


@dataclass
class ModuleInfo:
    id: str
    name: str
    paths: List[str] = field(default_factory=list)


@dataclass
class OutgoingLink:
    target_module_id: str
    link_type: str


@dataclass
class IncomingLink:
    source_module_id: str
    link_type: str


@dataclass
class ModuleLinks:
    outgoing: List[OutgoingLink] = field(default_factory=list)
    incoming: List[IncomingLink] = field(default_factory=list)


@dataclass
class SpecInfo:
    id: str
    title: str = ""
    module_id: Optional[str] = None


@dataclass
class SpecDependency:
    spec_id: str
    module_id: Optional[str] = None
    relationship: str = "depends_on"


class ModuleKnowledgeProvider(Protocol):
    def get_module(self, module_id: str) -> Optional[ModuleInfo]: ...

    def get_module_by_name(self, name: str) -> Optional[ModuleInfo]: ...

    def list_modules(self) -> List[ModuleInfo]: ...

    def detect_module_from_path(self, file_path: str) -> Optional[ModuleInfo]: ...

    def get_module_links(self, module_id: str) -> ModuleLinks: ...


class SpecProvider(Protocol):
    def get_spec_dependencies(self, spec_id: str) -> List[SpecDependency]: ...

    def get_spec(self, spec_id: str) -> Optional[SpecInfo]: ...


class ImportGraphProvider(Protocol):
    def get_importers(self, file_path: str) -> List[str]:
        """Files that import *file_path*."""
        ...

    def get_imports(self, file_path: str) -> List[str]:
        """Files that *file_path* imports."""
        ...


class DataFlowProvider(Protocol):
    def get_entity_flows(self, entity_name: str) -> List[DataFlow]: ...


class FlowCatalogProvider(Protocol):
    def all_flows(self) -> List[DataFlow]:
        """Every declared flow, in declaration order."""
        ...
