from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..models import AptRepository

DEFAULT_SOURCES_DIR = "/etc/apt/sources.list.d"
DEFAULT_KEYRINGS_DIR = "/etc/apt/keyrings"


@dataclass(frozen=True)
class SourceEntry:
    uri: str
    suite: str
    components: Tuple[str, ...] = ()
    options: Dict[str, str] = field(default_factory=dict)


def list_path(repo: AptRepository, sources_dir: str = DEFAULT_SOURCES_DIR) -> Path:
    return Path(sources_dir) / f"{repo.name}.list"


def keyring_path(repo: AptRepository, keyrings_dir: str = DEFAULT_KEYRINGS_DIR) -> Path:
    return Path(keyrings_dir) / f"{repo.name}.gpg"


def render_source_line(repo: AptRepository, keyring: Path | None = None) -> str:
    """Render a one-line apt source, e.g.

      deb [arch=amd64 signed-by=/etc/apt/keyrings/google-chrome.gpg] http://dl.google.com/linux/chrome/deb/ stable main
    """

    opts = []
    if repo.arch:
        opts.append(f"arch={repo.arch}")
    if keyring is not None:
        opts.append(f"signed-by={keyring}")
    opt_str = f"[{' '.join(opts)}] " if opts else ""
    return f"deb {opt_str}{repo.uri} {repo.suite} {' '.join(repo.components)}\n"


def parse_source_line(line: str) -> Optional[SourceEntry]:
    """Parse a one-line `deb` entry. Comments, blank lines and deb-src give None."""

    text = line.split("#", 1)[0].strip()
    if not text.startswith("deb "):
        return None
    rest = text[4:].strip()
    options: Dict[str, str] = {}
    if rest.startswith("["):
        end = rest.find("]")
        if end < 0:
            return None
        for item in rest[1:end].split():
            key, _, value = item.partition("=")
            options[key] = value
        rest = rest[end + 1 :]
    parts = rest.split()
    if len(parts) < 2:
        return None
    return SourceEntry(uri=parts[0].rstrip("/"), suite=parts[1], components=tuple(parts[2:]), options=options)


def _same_site(a: str, b: str) -> bool:
    # http and https mirrors of one repository are the same source.
    return a.split("://", 1)[-1].rstrip("/") == b.split("://", 1)[-1].rstrip("/")


def source_matches(repo: AptRepository, entry: SourceEntry) -> bool:
    return (
        _same_site(entry.uri, repo.uri)
        and entry.suite == repo.suite
        and set(repo.components) <= set(entry.components)
    )
