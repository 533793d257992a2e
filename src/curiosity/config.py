"""Configuration management for the curiosity engine."""

import os
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG = {
    "storage_backend": "sqlite",
    "db_path": "~/.curiosity/curiosity_engine.db",
    "graph": {
        "default_cluster": "uncategorized",
        "initial_weight": 0.5,
        "weight_increment": 0.1,
        "initial_strength": 0.3,
        "strength_increment": 0.1,
        "link_type": "semantic",
    },
    "clustering": {
        "min_link_strength": 0.3,
        "name_concepts": 3,
        "variance_threshold": 0.3,
        "prune_stale": False,
    },
    "tags": {
        "per_day": 5,
        "weights": {"history": 0.4, "wildcard": 0.3, "deep-dive": 0.2, "random": 0.1},
        "history_lookback_days": 7,
        "avoid_repetition_days": 3,
        "wildcard_lookback_days": 7,
        "deep_dive_recent": 10,
    },
}

DEFAULT_TAGS_FILE = Path(__file__).parent / "data" / "default_tags.yaml"


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".curiosity" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = copy_defaults()

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if db_path := os.environ.get("CURIOSITY_DB_PATH"):
        cfg["db_path"] = db_path
    if backend := os.environ.get("CURIOSITY_STORAGE_BACKEND"):
        cfg["storage_backend"] = backend

    if cfg["db_path"] != ":memory:":
        cfg["db_path"] = str(Path(cfg["db_path"]).expanduser().resolve())

    return cfg


def copy_defaults() -> dict[str, Any]:
    """Return a deep copy of DEFAULT_CONFIG that callers may mutate."""
    cfg: dict[str, Any] = {}
    _deep_merge(cfg, DEFAULT_CONFIG)
    return cfg


def load_default_tags(path: str | Path | None = None) -> list[dict[str, Any]]:
    """Load the bundled default tag catalog.

    Returns a list of dicts with ``name``, ``cluster`` and ``is_default`` keys.
    """
    p = Path(path) if path else DEFAULT_TAGS_FILE
    with open(p, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    tags = []
    for cluster, names in (data.get("clusters") or {}).items():
        for name in names or []:
            tags.append({"name": name, "cluster": cluster, "is_default": True})
    return tags


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if isinstance(v, dict):
            if not isinstance(base.get(k), dict):
                base[k] = {}
            _deep_merge(base[k], v)
        else:
            base[k] = v
