from __future__ import annotations

import json
import tomllib
from pathlib import Path

import yaml

from .errors import ConfigError

PATH_KEYS = {"articles", "out", "root", "db_file", "template"}


def load_config(path: Path) -> dict:
    """Read a TOML, YAML or JSON site config. A missing file means no overrides."""
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
        kind = "TOML"
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            return {}
        kind = "YAML"
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
        kind = "JSON"
    if not isinstance(data, dict):
        raise ConfigError(f"{kind} config must be a mapping: {path}")
    return resolve_paths(data, path.resolve().parent)


def resolve_paths(config: dict, base: Path) -> dict:
    """Make relative directory and file settings relative to the config file."""
    resolved = dict(config)
    for key in PATH_KEYS:
        value = resolved.get(key)
        if not value or not isinstance(value, str) or value == ":memory:":
            continue
        path = Path(value)
        if not path.is_absolute():
            resolved[key] = str(base / path)
    return resolved
