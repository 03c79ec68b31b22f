from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, TypeVar

from ..errors import ProvisionError, StepTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(ProvisionError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "", *, timed_out: bool = False) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        what = "timed out" if timed_out else f"failed ({returncode})"
        msg = f"Command {what}: {_fmt_argv(self.argv)}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    timeout: float | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr.
    - dry_run logs but does not execute.
    - env is passed as-is (the caller builds the whole environment).
    """

    argv_list = list(argv)
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv_list, -1, str(e.stderr or ""), timed_out=True) from e
    except FileNotFoundError as e:
        raise CommandError(argv_list, 127, str(e)) from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, p.stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


class CommandRunner:
    """Runs external commands with an explicit environment and a per-step time budget.

    run() is for commands with side effects and honours dry_run.
    query() is for read-only probes and always executes.
    """

    def __init__(
        self,
        *,
        env: Mapping[str, str],
        dry_run: bool = False,
        sudo: str = "sudo",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.env = dict(env)
        self.dry_run = dry_run
        self.sudo = sudo
        self._clock = clock
        self._budget: Optional[float] = None
        self._deadline: Optional[float] = None

    def start_budget(self, seconds: Optional[float]) -> None:
        self._budget = seconds
        self._deadline = None if seconds is None else self._clock() + seconds

    def clear_budget(self) -> None:
        self._budget = None
        self._deadline = None

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        left = self._deadline - self._clock()
        if left <= 0:
            raise StepTimeoutError(self._budget or 0)
        return left

    def _exec(
        self,
        argv: Sequence[str],
        *,
        check: bool,
        env: Mapping[str, str] | None,
        cwd: str | None,
        input_text: str | None,
        sudo: bool,
        dry_run: bool,
    ) -> CmdResult:
        full = [self.sudo, *argv] if sudo else list(argv)
        merged = dict(self.env, **(env or {}))
        try:
            return run_cmd(
                full,
                check=check,
                env=merged,
                cwd=cwd,
                input_text=input_text,
                timeout=self.remaining(),
                dry_run=dry_run,
            )
        except CommandError as e:
            if e.timed_out and self._deadline is not None:
                raise StepTimeoutError(self._budget or 0) from e
            raise

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        input_text: str | None = None,
        sudo: bool = False,
    ) -> CmdResult:
        return self._exec(
            argv, check=check, env=env, cwd=cwd, input_text=input_text, sudo=sudo, dry_run=self.dry_run
        )

    def query(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CmdResult:
        return self._exec(argv, check=False, env=env, cwd=cwd, input_text=None, sudo=False, dry_run=False)


def call_with_retry(
    fn: Callable[[], T],
    *,
    what: str,
    attempts: int = 2,
    backoff: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call fn, retrying CommandError with linear backoff.

    StepTimeoutError is never retried.
    """

    for attempt in range(1, attempts):
        try:
            return fn()
        except CommandError:
            logger.warning("%s failed (attempt %d/%d), retrying in %.1fs", what, attempt, attempts, backoff * attempt)
            sleep(backoff * attempt)
    return fn()
