from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml


def package_root() -> Path:
    # workspace_setup/lib/manifests.py -> workspace_setup
    return Path(__file__).resolve().parents[1]


def default_manifest_path() -> Path:
    return package_root() / "manifests" / "workstation.yaml"


def default_templates_dir() -> Path:
    return package_root() / "templates"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping. An empty file yields {}."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping/object")
    return data


def load_template(templates_dir: Path, rel_path: str) -> str:
    p = templates_dir / rel_path
    if not p.is_file():
        raise FileNotFoundError(f"Template not found: {p}")
    return p.read_text(encoding="utf-8")
