from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet

from .config import SetupConfig
from .lib.command import CommandRunner
from .lib.env import HostEnv
from .lib.pkg import PackageManager


@dataclass(frozen=True)
class StepCtx:
    cfg: SetupConfig
    host: HostEnv
    cmd: CommandRunner
    pkg: PackageManager
    dry_run: bool = False
    # Packages that some step in the plan relies on; never downgraded to optional.
    needed_packages: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def home(self) -> Path:
        return Path(self.host.home)

    def expand(self, p: str) -> Path:
        return self.host.expand(p)
