from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from workspace_setup.config import SetupConfig
from workspace_setup.context import StepCtx
from workspace_setup.lib.command import CmdResult, CommandError
from workspace_setup.lib.env import HostEnv
from workspace_setup.models import PackageResult


def ok(stdout: str = "") -> CmdResult:
    return CmdResult(argv=[], returncode=0, stdout=stdout, stderr="")


def fail(returncode: int = 1, stderr: str = "boom") -> CmdResult:
    return CmdResult(argv=[], returncode=returncode, stdout="", stderr=stderr)


@dataclass
class Call:
    argv: List[str]
    sudo: bool = False
    input_text: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)


class FakeRunner:
    """Records commands instead of running them.

    Rules registered with on() answer any command containing all of the given
    words; each rule hands out its results in order and repeats the last one.
    Unmatched commands succeed with empty output.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self.calls: List[Call] = []
        self.queries: List[List[str]] = []
        self.budgets: List[Optional[float]] = []
        self._rules: List[Tuple[Tuple[str, ...], Deque[CmdResult]]] = []

    def on(self, *words: str, results: Sequence[CmdResult]) -> "FakeRunner":
        self._rules.append((tuple(words), deque(results)))
        return self

    def _respond(self, argv: Sequence[str]) -> CmdResult:
        for words, queue in self._rules:
            if all(w in argv for w in words):
                r = queue.popleft() if len(queue) > 1 else queue[0]
                return CmdResult(list(argv), r.returncode, r.stdout, r.stderr)
        return CmdResult(list(argv), 0, "", "")

    def start_budget(self, seconds: Optional[float]) -> None:
        self.budgets.append(seconds)

    def clear_budget(self) -> None:
        pass

    def remaining(self) -> Optional[float]:
        return None

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        sudo: bool = False,
    ) -> CmdResult:
        self.calls.append(Call(list(argv), sudo, input_text, dict(env or {})))
        if self.dry_run:
            return CmdResult(list(argv), 0, "", "")
        r = self._respond(argv)
        if check and r.returncode != 0:
            raise CommandError(r.argv, r.returncode, r.stderr)
        return r

    def query(self, argv: Sequence[str], *, env: Optional[Dict[str, str]] = None, cwd: Optional[str] = None) -> CmdResult:
        self.queries.append(list(argv))
        return self._respond(argv)

    def argvs(self) -> List[List[str]]:
        return [c.argv for c in self.calls]


class FakePackageManager:
    name = "fake"

    def __init__(
        self,
        *,
        installed: Iterable[str] = (),
        candidates: Optional[Iterable[str]] = None,
        broken: Iterable[str] = (),
        pending: Iterable[str] = (),
    ) -> None:
        self.installed = set(installed)
        # None means every package has a candidate.
        self.candidates = None if candidates is None else set(candidates)
        self.broken = set(broken)
        self.pending = list(pending)
        self.registered: set = set()
        self.updates = 0
        self.install_calls: List[str] = []

    def is_installed(self, spec) -> bool:
        return spec.name in self.installed

    def has_candidate(self, spec) -> bool:
        return self.candidates is None or spec.name in self.candidates

    def update(self) -> None:
        self.updates += 1

    def upgrade(self) -> None:
        self.pending = []

    def pending_upgrades(self) -> List[str]:
        return list(self.pending)

    def ensure_installed(self, specs, *, required: Iterable[str] = ()) -> Dict[str, PackageResult]:
        must_have = set(required)
        results: Dict[str, PackageResult] = {}
        for s in specs:
            optional = s.optional and s.name not in must_have
            if s.name in self.installed:
                results[s.name] = PackageResult(s.name, "present", optional)
                continue
            self.install_calls.append(s.name)
            if not self.has_candidate(s) or s.name in self.broken:
                results[s.name] = PackageResult(s.name, "failed", optional, "unavailable")
            else:
                self.installed.add(s.name)
                results[s.name] = PackageResult(s.name, "installed", optional)
        return results

    def repository_registered(self, repo) -> bool:
        return repo.name in self.registered

    def add_repository(self, repo) -> None:
        self.registered.add(repo.name)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def host(home: Path) -> HostEnv:
    return HostEnv(home=str(home), user="dev", uid=1000)


@pytest.fixture
def make_cfg(tmp_path: Path):
    def _make(raw: Optional[Dict[str, Any]] = None) -> SetupConfig:
        data: Dict[str, Any] = {"runtime": {"step_timeout": 0, "retry_backoff": 0}}
        data.update(raw or {})
        return SetupConfig(raw=data, base_dir=tmp_path)

    return _make


@pytest.fixture
def make_ctx(make_cfg, host):
    def _make(
        raw: Optional[Dict[str, Any]] = None,
        *,
        runner: Optional[FakeRunner] = None,
        pkg: Optional[FakePackageManager] = None,
        dry_run: bool = False,
        needed: Iterable[str] = (),
        host_env: Optional[HostEnv] = None,
    ) -> StepCtx:
        return StepCtx(
            cfg=make_cfg(raw),
            host=host_env or host,
            cmd=runner or FakeRunner(dry_run=dry_run),
            pkg=pkg or FakePackageManager(),
            dry_run=dry_run,
            needed_packages=frozenset(needed),
        )

    return _make
