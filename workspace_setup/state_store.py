from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .lib.files import atomic_write_text
from .models import RunReport

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    try:
        if _detect_format(p) in {"yaml", "yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text) if text.strip() else {}
    except (ValueError, yaml.YAMLError) as e:
        raise ValueError(f"State file {p} is not readable: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")

    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)

    if _detect_format(p) in {"yaml", "yml"}:
        text = yaml.safe_dump(state, sort_keys=False)
    else:
        text = json.dumps(state, indent=2, sort_keys=True) + "\n"
    atomic_write_text(p, text, mode=0o600)
    logger.debug("Saved state to %s", p)


def record_run(state: Dict[str, Any], report: RunReport, *, limit: int = 20) -> Dict[str, Any]:
    """Store the report as the last run and push it onto a bounded history."""

    entry = report.to_dict()
    history = list(state.get("history") or [])
    history.append(entry)
    if limit > 0:
        history = history[-limit:]

    last = dict(state.get("last_outcomes") or {})
    for r in report.results:
        last[r.step_id] = r.outcome.value

    state["version"] = 1
    state["last_run"] = entry
    state["last_outcomes"] = last
    state["history"] = history
    return state


def last_outcomes(state: Dict[str, Any]) -> Dict[str, str]:
    """Most recent recorded outcome per step id (steps not run since keep theirs)."""
    return {str(k): str(v) for k, v in (state.get("last_outcomes") or {}).items()}
