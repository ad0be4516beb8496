# config.py
"""Configuration loading for the dashboard.

Settings come from a YAML file (``carbon.yaml`` next to this module unless
``CARBON_DASHBOARD_CONFIG`` points elsewhere). Missing keys fall back to
``DEFAULTS``.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

REPO_ROOT = Path(__file__).resolve().parent
CONFIG_ENV_VAR = "CARBON_DASHBOARD_CONFIG"

DEFAULTS: dict[str, Any] = {
    "database": {"url": "sqlite:///carbon.db", "echo": False},
    "logging": {"level": "INFO"},
    "scope_budgets": {"Scope 1": 5000, "Scope 2": 4000, "Scope 3": 8000},
    "uploads": {"directory": "uploads"},
}


def get_config_path() -> Path:
    """Return the configuration path, honouring CARBON_DASHBOARD_CONFIG when set."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return REPO_ROOT / "carbon.yaml"


def _merge(base: dict, override: Mapping) -> dict:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: Path | str | None = None) -> dict[str, Any]:
    config_path = Path(path) if path is not None else get_config_path()
    config = copy.deepcopy(DEFAULTS)
    if not config_path.exists():
        return config
    with config_path.open() as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, Mapping):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return _merge(config, loaded)


def setup_logging(config: Mapping[str, Any] | None = None) -> logging.Logger:
    """Attach a single stream handler to the ``carbon`` logger tree."""
    config = config or load_config()
    level = str(config.get("logging", {}).get("level", "INFO")).upper()
    logger = logging.getLogger("carbon")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


SETTINGS = load_config()
