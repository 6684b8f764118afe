"""JSON/YAML file helpers and dict merging."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

YAML_SUFFIXES = (".yaml", ".yml")


def load_json(path: Path) -> dict:
    """Load a JSON file, returning empty dict if missing or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def load_yaml(path: Path) -> dict:
    """Load a YAML mapping, returning empty dict if missing, malformed or not a mapping."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (FileNotFoundError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def load_mapping(path: Path) -> dict:
    """Load a config mapping, picking the parser from the file suffix."""
    if path.suffix.lower() in YAML_SUFFIXES:
        return load_yaml(path)
    return load_json(path)


def save_json(path: Path, data: dict) -> None:
    """Save dict as pretty-printed JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
