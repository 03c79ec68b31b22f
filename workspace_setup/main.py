from __future__ import annotations

import argparse
import contextlib
import logging
from typing import Any, Dict, List, Optional

from .config import DEFAULT_USER_CONFIG, SetupConfig, load_setup_config
from .context import StepCtx
from .errors import PreflightError, UnknownStepError
from .lib.command import CommandRunner
from .lib.env import HostEnv
from .lib.lock import RunLock
from .lib.pkg import get_package_manager
from .logging_utils import configure_logging
from .models import Outcome, RunReport
from .pipeline import run_pipeline, validate_plan
from .preflight import run_preflight
from .state_store import last_outcomes, load_state, record_run, save_state
from .steps import BaseStep, build_steps

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_USAGE = 2
EXIT_PREFLIGHT = 3


def build_context(cfg: SetupConfig, host: HostEnv, steps: List[BaseStep], *, dry_run: bool) -> StepCtx:
    runner = CommandRunner(env=host.command_env(extra_path=cfg.extra_path), dry_run=dry_run)
    pkg = get_package_manager(cfg.package_manager, runner, retry_backoff=cfg.retry_backoff)
    needed = frozenset(name for s in steps for name in s.needs_packages)
    return StepCtx(cfg=cfg, host=host, cmd=runner, pkg=pkg, dry_run=dry_run, needed_packages=needed)


def _read_state(path: str) -> Dict[str, Any]:
    try:
        return load_state(path)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", path, e)
        return {}


def print_report(report: RunReport) -> None:
    title = "Dry run" if report.dry_run else "Provisioning"
    print(f"\n{title} summary:")
    for r in report.results:
        line = f"  [{r.outcome.value:>7}] {r.step_id}"
        if r.outcome is Outcome.FAILED:
            line += f" ({'best-effort' if r.best_effort else 'required'}): {r.error}"
        elif r.detail:
            line += f": {r.detail}"
        print(line)

    if report.aborted and report.failed_required:
        failed = report.failed_required[-1]
        print(f"\nAborted: required step {failed.step_id} failed: {failed.error}")


def provision(
    cfg: SetupConfig,
    host: HostEnv,
    *,
    state_path: str,
    only: Optional[str] = None,
    dry_run: bool = False,
    force: bool = False,
) -> int:
    """Preflight, lock, run the plan, persist the report. Returns the exit code."""

    steps = build_steps(cfg, host)
    try:
        validate_plan(steps, only)
    except UnknownStepError as e:
        logger.error("%s", e)
        return EXIT_USAGE

    try:
        run_preflight(cfg, host)
    except PreflightError as e:
        logger.error("Preflight failed: %s", e)
        return EXIT_PREFLIGHT

    ctx = build_context(cfg, host, steps, dry_run=dry_run)
    lock = contextlib.nullcontext() if dry_run else RunLock(host.expand(cfg.lock_path))
    try:
        with lock:
            report = run_pipeline(steps=steps, ctx=ctx, only=only, force=force)
            if not dry_run:
                state = record_run(_read_state(state_path), report, limit=cfg.history_limit)
                try:
                    save_state(state_path, state)
                except OSError as e:
                    logger.error("Could not save state to %s: %s", state_path, e)
    except PreflightError as e:
        logger.error("Preflight failed: %s", e)
        return EXIT_PREFLIGHT

    print_report(report)
    if report.ok and not dry_run and only is None and cfg.next_steps:
        print("\nNext steps:")
        for i, item in enumerate(cfg.next_steps, 1):
            print(f"  {i}. {item}")
    return report.exit_code


def list_steps(cfg: SetupConfig, host: HostEnv, *, state_path: str) -> int:
    steps = build_steps(cfg, host)
    validate_plan(steps)
    last = last_outcomes(_read_state(state_path))
    for s in steps:
        severity = "best-effort" if s.best_effort else "required"
        print(f"{s.step_id:<32} {severity:<12} {last.get(s.step_id, '-'):<8} {s.description}")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="workspace-setup", description="Provision an Ubuntu developer workstation")
    p.add_argument("--manifest", default=None, help="Path to the provisioning manifest (yaml)")
    p.add_argument("--config", default=DEFAULT_USER_CONFIG, help="User overrides merged over the manifest")
    p.add_argument("--state", default=None, help="Path to run state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to the log file")
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")

    sub = p.add_subparsers(dest="command", required=True)
    prov = sub.add_parser("provision", help="Run the provisioning steps")
    prov.add_argument("--only", default=None, metavar="NAME", help="Run a single step by id")
    prov.add_argument("--dry-run", action="store_true", help="Show what would change without changing anything")
    prov.add_argument("--force", action="store_true", help="Run steps even if they look done")
    sub.add_parser("list-steps", help="List steps with severity and last outcome")

    args = p.parse_args(argv)

    host = HostEnv.from_environ()
    try:
        cfg = load_setup_config(args.manifest, str(host.expand(args.config)))
    except (OSError, ValueError) as e:
        print(f"workspace-setup: cannot load configuration: {e}")
        return EXIT_USAGE

    configure_logging(
        log_path=str(host.expand(args.log or cfg.log_path)),
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    state_path = str(host.expand(args.state or cfg.state_path))

    try:
        if args.command == "list-steps":
            return list_steps(cfg, host, state_path=state_path)
        return provision(
            cfg,
            host,
            state_path=state_path,
            only=args.only,
            dry_run=args.dry_run,
            force=args.force,
        )
    except (ValueError, KeyError, FileNotFoundError) as e:
        logger.error("Invalid manifest: %s", e)
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
