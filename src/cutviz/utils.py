from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml


def read_yaml_file(yaml_path: str | Path) -> dict:
    """Read and parse a YAML file into a dict."""
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"YAML file not found: {yaml_path}")

    try:
        with open(yaml_path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML file {yaml_path}: {e}") from e

    if not isinstance(content, dict):
        raise ValueError(f"YAML file must contain a dict, got: {type(content)}")
    return content


def write_yaml_file(yaml_path: str | Path, content: Mapping[str, Any]) -> Path:
    """Write ``content`` as YAML, keeping key order."""
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w") as f:
        yaml.safe_dump(dict(content), f, sort_keys=False)
    return yaml_path


__all__ = ["read_yaml_file", "write_yaml_file"]
