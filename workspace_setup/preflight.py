from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Optional

from .config import SetupConfig
from .errors import PreflightError
from .lib.env import HostEnv

logger = logging.getLogger(__name__)


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse /etc/os-release KEY=value lines (values may be quoted)."""
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        out[key.strip()] = value.strip().strip('"').strip("'")
    return out


def detect_os(path: str) -> Dict[str, str]:
    try:
        return parse_os_release(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise PreflightError(f"Cannot read {path}: {e}") from e


def _home_writable(home: Path) -> bool:
    if not home.is_dir():
        return False
    try:
        with tempfile.NamedTemporaryFile(dir=str(home), prefix=".workspace-setup-probe."):
            pass
    except OSError:
        return False
    return True


def run_preflight(
    cfg: SetupConfig,
    host: HostEnv,
    *,
    which: Callable[..., Optional[str]] = shutil.which,
) -> None:
    """Check the host can be provisioned. Raises PreflightError on the first problem.

    - must not run as root (files would end up owned by root in $HOME)
    - /etc/os-release ID or ID_LIKE must be a supported distribution
    - $HOME must exist and be writable
    - package-manager tooling must be on PATH
    """

    if host.uid == 0:
        raise PreflightError("Do not run as root; run as your normal user (sudo is used where needed)")

    info = detect_os(cfg.os_release_path)
    ids = {info.get("ID", "").lower(), *info.get("ID_LIKE", "").lower().split()}
    ids.discard("")
    if not ids & set(cfg.supported_os):
        name = info.get("PRETTY_NAME") or info.get("ID") or "unknown"
        raise PreflightError(f"Unsupported OS {name!r} (supported: {', '.join(cfg.supported_os)})")

    if not _home_writable(Path(host.home)):
        raise PreflightError(f"Home directory {host.home} is missing or not writable")

    missing = [t for t in cfg.required_tools if which(t, path=host.path) is None]
    if missing:
        raise PreflightError(f"Required tools not found on PATH: {', '.join(missing)}")

    logger.info(
        "Preflight ok (os=%s, user=%s, wsl=%s)",
        info.get("PRETTY_NAME") or info.get("ID"),
        host.user,
        host.wsl_distro or "no",
    )
