"""YAML config loader with hashing and runtime get/set."""

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from meteogram.config.schema import MeteogramConfig


def load_config(path: str | Path) -> MeteogramConfig:
    """Load and validate config from a YAML file.

    A missing or empty file yields the default configuration.
    """
    path = Path(path)
    if not path.exists():
        return MeteogramConfig()
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return MeteogramConfig(**raw)


def config_hash(config: MeteogramConfig) -> str:
    """Compute a deterministic SHA256 hash of the config."""
    data = config.model_dump_json(indent=None)
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def get_config_value(config: MeteogramConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'source.source_url'."""
    parts = dotted_key.split(".")
    obj: Any = config
    for part in parts:
        if hasattr(obj, part):
            obj = getattr(obj, part)
        elif isinstance(obj, dict):
            obj = obj[part]
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj


def set_config_value(config: MeteogramConfig, dotted_key: str, value: Any) -> MeteogramConfig:
    """Set a config value by dotted key path and re-validate.

    Returns a new MeteogramConfig instance.
    """
    data = json.loads(config.model_dump_json())
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        if part not in target:
            raise KeyError(f"Config key not found: {dotted_key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Config key not found: {dotted_key}")
    # Attempt type coercion for common cases
    old_value = target.get(parts[-1])
    if isinstance(old_value, bool) and isinstance(value, str):
        value = value.lower() in ("1", "true", "yes", "on")
    elif isinstance(old_value, int) and isinstance(value, str):
        value = int(value)
    elif isinstance(old_value, float) and isinstance(value, str):
        value = float(value)
    target[parts[-1]] = value
    return MeteogramConfig(**data)


def save_config(config: MeteogramConfig, path: str | Path) -> None:
    """Write the config back to YAML."""
    data = json.loads(config.model_dump_json())
    with open(Path(path), "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
