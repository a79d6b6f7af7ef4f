from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "app": {"log_dir": None},
    "service": {"host": "127.0.0.1", "port": 8766},
    "validation": {"normalize": False, "workers": 1},
}


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data or {}


def deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Path) -> Dict[str, Any]:
    """YAML config merged over DEFAULT_CONFIG; a missing file yields the defaults."""
    data = load_yaml(path)
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping: {path}")
    return _merge(DEFAULT_CONFIG, data)
