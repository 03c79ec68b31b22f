from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .lib.env import HostEnv
from .lib.files import render_template
from .lib.manifests import default_manifest_path, default_templates_dir, load_template, load_yaml
from .models import AptRepository, FileArtifact, PackageSpec, RemoteInstaller

DEFAULT_USER_CONFIG = "~/.config/workspace-setup/config.yaml"
DEFAULT_STATE_PATH = "~/.local/state/workspace-setup/state.json"
DEFAULT_LOG_PATH = "~/.local/state/workspace-setup/workspace-setup.log"
DEFAULT_LOCK_PATH = "~/.local/state/workspace-setup/run.lock"


def deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base. Mappings merge; everything else replaces."""
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _parse_mode(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return int(str(value), 8)


@dataclass(frozen=True)
class SetupConfig:
    raw: Dict[str, Any]
    base_dir: Path

    # -- plan --

    @property
    def step_entries(self) -> List[Dict[str, Any]]:
        entries = self.raw.get("steps") or []
        if not isinstance(entries, list):
            raise ValueError("steps must be a list")
        for e in entries:
            if not isinstance(e, dict) or not e.get("id") or not e.get("kind"):
                raise ValueError(f"Each step needs an id and a kind: {e!r}")
        return entries

    @property
    def package_manager(self) -> str:
        return str(self.raw.get("package_manager") or "apt")

    @property
    def packages(self) -> List[PackageSpec]:
        out: List[PackageSpec] = []
        for item in self.raw.get("packages") or []:
            if isinstance(item, str):
                out.append(PackageSpec(name=item))
                continue
            if not isinstance(item, dict) or not item.get("name"):
                raise ValueError(f"Invalid package entry: {item!r}")
            out.append(
                PackageSpec(
                    name=str(item["name"]),
                    version=str(item["version"]) if item.get("version") else None,
                    source=item.get("source"),
                    optional=bool(item.get("optional", False)),
                )
            )
        return out

    @property
    def repositories(self) -> Dict[str, AptRepository]:
        out: Dict[str, AptRepository] = {}
        for name, item in (self.raw.get("repositories") or {}).items():
            out[name] = AptRepository(
                name=name,
                uri=str(item["uri"]),
                suite=str(item.get("suite") or "stable"),
                components=tuple(item.get("components") or ["main"]),
                key_url=item.get("key_url"),
                arch=item.get("arch"),
            )
        return out

    @property
    def remote_installers(self) -> Dict[str, RemoteInstaller]:
        out: Dict[str, RemoteInstaller] = {}
        for name, item in (self.raw.get("remote_installers") or {}).items():
            out[name] = RemoteInstaller(
                name=name,
                url=str(item["url"]),
                creates=str(item["creates"]),
                shell=str(item.get("shell") or "bash"),
                args=tuple(str(a) for a in item.get("args") or []),
                env=tuple(sorted((str(k), str(v)) for k, v in (item.get("env") or {}).items())),
            )
        return out

    # -- tools --

    @property
    def node_version(self) -> str:
        return str(((self.raw.get("node") or {}).get("version")) or "v24.4.1")

    @property
    def nvm_dir(self) -> str:
        return str(((self.raw.get("node") or {}).get("nvm_dir")) or "~/.nvm")

    @property
    def npm_globals(self) -> List[str]:
        return [str(p) for p in ((self.raw.get("node") or {}).get("globals") or [])]

    @property
    def login_shell(self) -> str:
        return str(self.raw.get("login_shell") or "/usr/bin/fish")

    @property
    def fisher_url(self) -> str:
        return str(
            ((self.raw.get("fisher") or {}).get("url"))
            or "https://raw.githubusercontent.com/jorgebucaran/fisher/main/functions/fisher.fish"
        )

    @property
    def fisher_plugins(self) -> List[str]:
        return [str(p) for p in ((self.raw.get("fisher") or {}).get("plugins") or [])]

    @property
    def tide_options(self) -> List[str]:
        return [str(o) for o in (self.raw.get("tide_options") or [])]

    @property
    def directories(self) -> List[str]:
        return [str(d) for d in (self.raw.get("directories") or [])]

    @property
    def extra_path(self) -> List[str]:
        return [str(p) for p in (self.raw.get("extra_path") or [])]

    @property
    def next_steps(self) -> List[str]:
        return [str(s) for s in (self.raw.get("next_steps") or [])]

    # -- preflight --

    @property
    def supported_os(self) -> List[str]:
        return [str(s).lower() for s in (self.raw.get("supported_os") or ["ubuntu"])]

    @property
    def required_tools(self) -> List[str]:
        tools = self.raw.get("required_tools")
        if tools is None:
            return ["sudo", "apt-get", "dpkg-query", "apt-cache"]
        return [str(t) for t in tools]

    @property
    def os_release_path(self) -> str:
        return str(self.raw.get("os_release_path") or "/etc/os-release")

    # -- runtime knobs --

    @property
    def step_timeout(self) -> Optional[float]:
        v = (self.raw.get("runtime") or {}).get("step_timeout", 1800)
        return None if v in (None, 0) else float(v)

    @property
    def retry_backoff(self) -> float:
        return float((self.raw.get("runtime") or {}).get("retry_backoff", 5))

    @property
    def history_limit(self) -> int:
        return int((self.raw.get("runtime") or {}).get("history_limit", 20))

    @property
    def state_path(self) -> str:
        return str(((self.raw.get("paths") or {}).get("state")) or DEFAULT_STATE_PATH)

    @property
    def log_path(self) -> str:
        return str(((self.raw.get("paths") or {}).get("log")) or DEFAULT_LOG_PATH)

    @property
    def lock_path(self) -> str:
        return str(((self.raw.get("paths") or {}).get("lock")) or DEFAULT_LOCK_PATH)

    # -- artifacts --

    @property
    def templates_dir(self) -> Path:
        rel = self.raw.get("templates_dir")
        if not rel:
            return default_templates_dir()
        p = Path(str(rel)).expanduser()
        return p if p.is_absolute() else self.base_dir / p

    def template_variables(self, host: HostEnv) -> Dict[str, str]:
        variables = {
            "HOME": host.home,
            "USER": host.user,
            "NODE_VERSION": self.node_version,
        }
        variables.update({str(k): str(v) for k, v in (self.raw.get("template_variables") or {}).items()})
        return variables

    def artifacts(self, group: str, host: HostEnv) -> List[FileArtifact]:
        """Render the artifacts of one group for this host.

        Entries with `when: wsl` are dropped on non-WSL hosts.
        """

        groups = self.raw.get("artifacts") or {}
        if group not in groups:
            raise ValueError(f"Unknown artifact group: {group}")

        variables = self.template_variables(host)
        out: List[FileArtifact] = []
        for entry in groups[group] or []:
            when = str(entry.get("when") or "always")
            if when == "wsl" and not host.is_wsl:
                continue

            if entry.get("glob"):
                dest_dir = host.expand(str(entry["dest_dir"]))
                for tpl in sorted(self.templates_dir.glob(str(entry["glob"]))):
                    rel = str(tpl.relative_to(self.templates_dir))
                    out.append(self._artifact(entry, dest_dir / tpl.name, rel, variables))
            else:
                out.append(self._artifact(entry, host.expand(str(entry["path"])), entry.get("template"), variables))
        return out

    def _artifact(
        self,
        entry: Mapping[str, Any],
        target: Path,
        template: Optional[str],
        variables: Mapping[str, str],
    ) -> FileArtifact:
        if template:
            text = load_template(self.templates_dir, str(template))
        elif "content" in entry:
            text = str(entry["content"])
        else:
            raise ValueError(f"Artifact {target} needs a template or content")

        marker = entry.get("marker")
        exclusive = bool(entry.get("exclusive", marker is None))
        # Managed blocks leave the mode of a user's file alone unless the manifest sets one.
        return FileArtifact(
            path=str(target),
            content=render_template(text, variables),
            mode=_parse_mode(entry.get("mode"), 0o644 if exclusive else None),
            marker=str(marker) if marker else None,
            exclusive=exclusive,
            comment=str(entry.get("comment") or "#"),
        )


def load_setup_config(
    manifest_path: Optional[str] = None,
    overrides_path: Optional[str] = None,
) -> SetupConfig:
    """Load the manifest and deep-merge optional user overrides on top."""

    manifest = Path(manifest_path).expanduser() if manifest_path else default_manifest_path()
    if not manifest.exists():
        raise FileNotFoundError(str(manifest))

    raw = load_yaml(manifest)

    if overrides_path:
        override = Path(overrides_path).expanduser()
        if override.exists():
            raw = deep_merge(raw, load_yaml(override))

    return SetupConfig(raw=raw, base_dir=manifest.resolve().parent)
