from __future__ import annotations

import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from ..errors import FileWriteError
from ..models import FileArtifact

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"@([A-Z][A-Z0-9_]*)@")
DEFAULT_MODE = 0o644


def render_template(text: str, variables: Mapping[str, str]) -> str:
    """Substitute @NAME@ placeholders. Unknown names raise KeyError."""

    def _sub(m: re.Match) -> str:
        key = m.group(1)
        if key not in variables:
            raise KeyError(f"Template variable {key!r} is not defined")
        return str(variables[key])

    return _PLACEHOLDER.sub(_sub, text)


def ensure_dir(path: Path, *, dry_run: bool = False) -> bool:
    """Create a directory (and parents). Returns True if it had to be created."""
    if path.is_dir():
        return False
    if dry_run:
        logger.info("Would create directory %s", path)
        return True
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileWriteError(str(path), str(e)) from e
    logger.info("Created directory %s", path)
    return True


def _block(artifact: FileArtifact) -> str:
    body = artifact.content if artifact.content.endswith("\n") else artifact.content + "\n"
    return f"{artifact.start_marker}\n{body}{artifact.end_marker}\n"


def desired_content(artifact: FileArtifact, existing: Optional[str]) -> str:
    """Return what the target should contain after materialization.

    Exclusive artifacts own the whole file. Marker artifacts own only the
    region between their start/end marker lines; everything else in
    `existing` is kept verbatim.
    """

    if artifact.exclusive or artifact.marker is None:
        return artifact.content

    block = _block(artifact)
    if not existing:
        return block

    lines = existing.splitlines(keepends=True)
    start = end = None
    for i, line in enumerate(lines):
        stripped = line.rstrip("\r\n")
        if start is None and stripped == artifact.start_marker:
            start = i
        elif start is not None and stripped == artifact.end_marker:
            end = i
            break

    if start is None:
        sep = "" if existing.endswith("\n") else "\n"
        return f"{existing}{sep}\n{block}"
    if end is None:
        raise FileWriteError(artifact.path, f"managed block {artifact.marker!r} has no end marker")

    return "".join(lines[:start]) + block + "".join(lines[end + 1 :])


def _real(target: Path) -> Path:
    # Symlinked dotfiles are written through, the link itself stays.
    return target.resolve() if target.is_symlink() else target


def _read(path: Path) -> Optional[str]:
    # Bytes that are not UTF-8 survive a read/write cycle as surrogates.
    try:
        return path.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise FileWriteError(str(path), str(e)) from e


def _wanted_mode(artifact: FileArtifact, current: Optional[int]) -> int:
    if artifact.mode is not None:
        return artifact.mode
    return current if current is not None else DEFAULT_MODE


def is_current(artifact: FileArtifact, target: Path) -> bool:
    target = _real(target)
    existing = _read(target)
    if existing is None:
        return False
    if desired_content(artifact, existing) != existing:
        return False
    return artifact.mode is None or stat.S_IMODE(target.stat().st_mode) == artifact.mode


def atomic_write_text(target: Path, content: str, *, mode: int = DEFAULT_MODE, errors: str = "strict") -> None:
    """Write content atomically (temp file in the same directory, then replace)."""

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", errors=errors) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError as exc:
                logger.debug("Failed to remove temp file %s: %s", tmp_path, exc)


def materialize(artifact: FileArtifact, target: Path, *, dry_run: bool = False) -> bool:
    """Bring target in line with artifact. Returns True if it changed (or would change).

    A symlinked target is updated through the link. An existing file keeps
    its permissions unless the artifact names a mode.
    """

    target = _real(target)
    existing = _read(target)
    current_mode = stat.S_IMODE(target.stat().st_mode) if existing is not None else None
    content = desired_content(artifact, existing)
    mode = _wanted_mode(artifact, current_mode)
    if existing == content and current_mode == mode:
        logger.debug("Up to date: %s", target)
        return False

    if dry_run:
        logger.info("Would write %s", target)
        return True

    try:
        atomic_write_text(target, content, mode=mode, errors="surrogateescape")
    except OSError as e:
        raise FileWriteError(str(target), str(e)) from e

    logger.info("Wrote %s (%s)", target, "managed block" if not artifact.exclusive else "whole file")
    return True
