"""Pytest configuration and fixtures for ScopeGraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from scopegraph.knowledge import ProjectKnowledge
from scopegraph.storage import ProjectManager, ReferenceStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolated_config(temp_dir: Path, monkeypatch):
    """Keep every test away from the real ~/.scopegraph directory, memory and config.toml."""
    memory_dir = temp_dir / "memory"
    state_file = temp_dir / "state.json"

    # Patch both config AND storage modules (storage imports at module load)
    monkeypatch.setattr("scopegraph.config.BASE_DIR", temp_dir)
    monkeypatch.setattr("scopegraph.config.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("scopegraph.config.STATE_FILE", state_file)
    monkeypatch.setattr("scopegraph.storage.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("scopegraph.storage.STATE_FILE", state_file)
    monkeypatch.setattr("scopegraph.config_manager.CONFIG_FILE", temp_dir / "config.toml")


@pytest.fixture
def temp_project_manager() -> ProjectManager:
    """Create a ProjectManager with temporary storage."""
    return ProjectManager()


@pytest.fixture
def temp_reference_store(temp_dir: Path) -> Generator[ReferenceStore, None, None]:
    """Create a ReferenceStore with temporary storage."""
    project_dir = temp_dir / "test_project"
    project_dir.mkdir(parents=True, exist_ok=True)
    store = ReferenceStore(project_dir)
    yield store
    store.close()


@pytest.fixture
def sample_knowledge_path() -> Path:
    """Path to the sample project knowledge file."""
    return Path(__file__).parent / "fixtures" / "sample_knowledge.json"


@pytest.fixture
def sample_knowledge(sample_knowledge_path: Path) -> ProjectKnowledge:
    """Sample knowledge: auth <- users <- orders <- billing <- reports, notifications -> users."""
    return ProjectKnowledge.load(sample_knowledge_path)


@pytest.fixture
def make_knowledge():
    """Factory building ProjectKnowledge from plain module ids and (source, target, type) links."""

    def _make(module_ids, links=(), imports=None, flows=()):
        return ProjectKnowledge.from_dict({
            "modules": [{"id": m, "name": m, "paths": [f"src/{m}/**"]} for m in module_ids],
            "links": [{"source": s, "target": t, "type": kind} for s, t, kind in links],
            "imports": imports or {},
            "flows": list(flows),
        })

    return _make
