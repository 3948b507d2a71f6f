"""Configuration and runtime bootstrapping."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

DATABASE_URL_ENV = "MIND_DATABASE_URL"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_runtime_dirs(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Ensure the database directory exists and return resolved paths."""
    paths_cfg = config.get("paths", {})
    db_path = (root / paths_cfg.get("db_path", "workspace/mind.db")).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return {"db_path": db_path}


def load_effective_config(root: Path) -> dict[str, Any]:
    """Load and merge all runtime configuration files."""
    config_dir = root / "config"
    default_cfg = load_yaml(config_dir / "default.yaml")
    models_cfg = load_yaml(config_dir / "models.yaml")

    merged = merge_dicts(default_cfg, {"models": models_cfg})
    database_url = os.getenv(DATABASE_URL_ENV)
    if database_url:
        merged = merge_dicts(merged, {"database": {"url": database_url}})
    return merged


def configure_logging(config: dict[str, Any]) -> None:
    """Apply the ``logging`` section to the root logger."""
    logging_cfg = config.get("logging", {}) or {}
    level_name = str(logging_cfg.get("level", "WARNING")).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {level_name}")
    logging.basicConfig(
        level=level,
        format=logging_cfg.get("format", "%(asctime)s %(levelname)s %(name)s: %(message)s"),
    )
    logging.getLogger("mind").setLevel(level)
