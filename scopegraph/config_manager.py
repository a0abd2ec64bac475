"""Configuration manager for ScopeGraph using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict

import toml

from . import config
from .config import BASE_DIR

logger = logging.getLogger(__name__)

CONFIG_FILE = BASE_DIR / "config.toml"


# Defaults per section; the value types double as the coercion table for `set_value`.
DEFAULT_CONFIGS: Dict[str, Dict[str, Any]] = {
    "scope": {
        "max_depth": config.DEFAULT_MAX_DEPTH,
        "include_indirect": config.DEFAULT_INCLUDE_INDIRECT,
        "expand_imports": config.DEFAULT_EXPAND_IMPORTS,
        "expand_data_flows": config.DEFAULT_EXPAND_DATA_FLOWS,
    },
    "references": {
        "created_by": config.DEFAULT_CREATED_BY,
        "default_limit": config.DEFAULT_QUERY_LIMIT,
        "timeout": config.DEFAULT_DB_TIMEOUT,
    },
    "validation": {
        "include_module_tests": True,
        "include_data_flow_validations": True,
        "include_api_validations": True,
        "test_command": config.DEFAULT_TEST_COMMAND,
        "module_path_prefix": config.DEFAULT_MODULE_TEST_PREFIX,
    },
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(payload: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w") as f:
            toml.dump(payload, f)
        return True
    except OSError as exc:
        logger.warning("Failed to write config file %s: %s", CONFIG_FILE, exc)
        return False


def load_section(section: str) -> Dict[str, Any]:
    """Return a config section merged over its defaults.

    Unknown keys in the file are kept so that newer config files still load.
    """
    merged = dict(DEFAULT_CONFIGS.get(section, {}))
    merged.update(load_full_config().get(section, {}))
    return merged


def load_scope_config() -> Dict[str, Any]:
    """Load the ``[scope]`` section (scope expansion settings)."""
    return load_section("scope")


def load_reference_config() -> Dict[str, Any]:
    """Load the ``[references]`` section (entity reference store settings)."""
    return load_section("references")


def load_validation_config() -> Dict[str, Any]:
    """Load the ``[validation]`` section (checklist generation settings)."""
    return load_section("validation")


def coerce_value(section: str, key: str, raw: str) -> Any:
    """Convert a command-line string to the type of the default for ``section.key``.

    Raises:
        ValueError: if the key is unknown or the value cannot be converted.
    """
    defaults = DEFAULT_CONFIGS.get(section)
    if defaults is None or key not in defaults:
        raise ValueError(f"Unknown config key: {section}.{key}")

    default = defaults[key]
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Expected a boolean for {section}.{key}, got {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def set_value(section: str, key: str, raw: str) -> bool:
    """Persist one setting, preserving every other section in the file.

    Returns:
        True if saved successfully, False otherwise.
    """
    value = coerce_value(section, key, raw)
    payload = load_full_config()
    payload.setdefault(section, {})[key] = value
    return _save_full_config(payload)


def reset_section(section: str) -> bool:
    """Remove a section from config, resetting it to defaults."""
    payload = load_full_config()
    payload.pop(section, None)
    return _save_full_config(payload)
