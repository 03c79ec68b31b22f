from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class PackageSpec:
    name: str
    version: Optional[str] = None
    # Name of an AptRepository that must be registered for this package to resolve.
    source: Optional[str] = None
    optional: bool = False

    @property
    def install_arg(self) -> str:
        return f"{self.name}={self.version}" if self.version else self.name


@dataclass(frozen=True)
class PackageResult:
    name: str
    status: str  # present | installed | failed
    optional: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


@dataclass(frozen=True)
class AptRepository:
    name: str
    uri: str
    suite: str
    components: Tuple[str, ...] = ("main",)
    key_url: Optional[str] = None
    arch: Optional[str] = None


@dataclass(frozen=True)
class RemoteInstaller:
    name: str
    url: str
    creates: str
    shell: str = "bash"
    args: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class FileArtifact:
    path: str
    content: str
    # None keeps the mode of an existing file (0644 for a new one).
    mode: Optional[int] = 0o644
    marker: Optional[str] = None
    exclusive: bool = True
    comment: str = "#"

    @property
    def start_marker(self) -> str:
        return f"{self.comment} >>> {self.marker} >>>"

    @property
    def end_marker(self) -> str:
        return f"{self.comment} <<< {self.marker} <<<"


class Outcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    step_id: str
    outcome: Outcome
    best_effort: bool = False
    detail: str = ""
    error: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["outcome"] = self.outcome.value
        return d


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RunReport:
    results: List[StepResult] = field(default_factory=list)
    dry_run: bool = False
    aborted: bool = False
    started_at: str = field(default_factory=_now)

    def add(self, result: StepResult) -> StepResult:
        self.results.append(result)
        return result

    def outcome_of(self, step_id: str) -> Optional[Outcome]:
        for r in self.results:
            if r.step_id == step_id:
                return r.outcome
        return None

    @property
    def step_ids(self) -> List[str]:
        return [r.step_id for r in self.results]

    @property
    def failed_required(self) -> List[StepResult]:
        return [r for r in self.results if r.outcome is Outcome.FAILED and not r.best_effort]

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failed_required

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "dry_run": self.dry_run,
            "aborted": self.aborted,
            "results": [r.to_dict() for r in self.results],
        }
