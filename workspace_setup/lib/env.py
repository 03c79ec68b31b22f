from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

DEFAULT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


@dataclass(frozen=True)
class HostEnv:
    """Process environment captured once at the CLI boundary.

    Collaborators receive this value instead of reading os.environ themselves.
    """

    home: str
    user: str
    uid: int
    path: str = DEFAULT_PATH
    wsl_distro: Optional[str] = None
    lang: str = "C.UTF-8"

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "HostEnv":
        env = os.environ if environ is None else environ
        home = env.get("HOME") or str(Path.home())
        user = env.get("USER") or env.get("LOGNAME") or getpass.getuser()
        return cls(
            home=home,
            user=user,
            uid=os.geteuid(),
            path=env.get("PATH") or DEFAULT_PATH,
            wsl_distro=env.get("WSL_DISTRO_NAME") or None,
            lang=env.get("LANG") or "C.UTF-8",
        )

    @property
    def is_wsl(self) -> bool:
        return bool(self.wsl_distro)

    def expand(self, p: str) -> Path:
        """Expand a leading ~ against this host's home (not the process's)."""
        if p == "~":
            return Path(self.home)
        if p.startswith("~/"):
            return Path(self.home) / p[2:]
        return Path(p)

    def command_env(
        self,
        *,
        extra_path: Iterable[str] = (),
        extra: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        prefix = [str(self.expand(p)) for p in extra_path]
        env = {
            "HOME": self.home,
            "USER": self.user,
            "LOGNAME": self.user,
            "LANG": self.lang,
            "PATH": os.pathsep.join([*prefix, self.path]) if prefix else self.path,
        }
        if self.wsl_distro:
            env["WSL_DISTRO_NAME"] = self.wsl_distro
        env.update(extra or {})
        return env
