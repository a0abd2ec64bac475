"""Configuration paths and analysis defaults for local ScopeGraph memory."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("SCOPEGRAPH_HOME", str(Path.home() / ".scopegraph"))).expanduser()
MEMORY_DIR = BASE_DIR / "memory"
STATE_FILE = BASE_DIR / "state.json"
REFERENCES_DB = "references.db"

# Scope expansion defaults (overridable via [scope] in config.toml)
DEFAULT_MAX_DEPTH = 3
DEFAULT_INCLUDE_INDIRECT = True
DEFAULT_EXPAND_IMPORTS = True
DEFAULT_EXPAND_DATA_FLOWS = True

# Entity reference defaults (overridable via [references] in config.toml)
DEFAULT_CREATED_BY = "system"
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 500
DEFAULT_DB_TIMEOUT = 5.0

# Validation checklist defaults (overridable via [validation] in config.toml)
DEFAULT_TEST_COMMAND = "pytest"
DEFAULT_MODULE_TEST_PREFIX = "tests/"


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    MEMORY_DIR.mkdir(parents=True, exist_ok=True)
    BASE_DIR.mkdir(parents=True, exist_ok=True)
