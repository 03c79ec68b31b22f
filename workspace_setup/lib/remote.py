from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional, Sequence

from .command import CmdResult, CommandError, CommandRunner, call_with_retry

logger = logging.getLogger(__name__)


def _sleep_kwargs(sleep: Optional[Callable[[float], None]]) -> dict:
    return {"sleep": sleep} if sleep is not None else {}


def fetch_text(
    runner: CommandRunner,
    url: str,
    *,
    retry_backoff: float = 5.0,
    sleep: Optional[Callable[[float], None]] = None,
) -> str:
    """Download a URL with curl, retrying once on failure.

    Downloads are read-only, so they also run during dry runs.
    """

    r = call_with_retry(
        lambda: _curl(runner, url),
        what=f"download {url}",
        backoff=retry_backoff,
        **_sleep_kwargs(sleep),
    )
    return r.stdout


def _curl(runner: CommandRunner, url: str) -> CmdResult:
    r = runner.query(["curl", "-fsSL", url])
    if r.returncode != 0:
        raise CommandError(r.argv, r.returncode, r.stderr)
    return r


def run_with_retry(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    retry_backoff: float = 5.0,
    sleep: Optional[Callable[[float], None]] = None,
) -> CmdResult:
    """Run a network-bound command (plugin installs, remote scripts) with one retry."""

    return call_with_retry(
        lambda: runner.run(argv, env=env, input_text=input_text),
        what=" ".join(argv[:3]),
        backoff=retry_backoff,
        **_sleep_kwargs(sleep),
    )
