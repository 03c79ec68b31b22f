from __future__ import annotations

import logging
import time
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from .errors import ProvisionError, UnknownStepError
from .models import Outcome, RunReport, StepResult

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent provisioning step."""

    step_id: str
    description: str
    best_effort: bool
    requires: Tuple[str, ...]
    needs_packages: Tuple[str, ...]

    def is_done(self, ctx: Any) -> bool:
        ...

    def run(self, ctx: Any) -> Optional[str]:
        ...

    def preview(self, ctx: Any) -> List[str]:
        ...


def validate_plan(steps: Sequence[Step], only: Optional[str] = None) -> None:
    """Check ids are unique and every dependency is declared earlier.

    Raises ValueError for a broken plan and UnknownStepError for a bad `only`.
    """

    seen: List[str] = []
    for step in steps:
        if step.step_id in seen:
            raise ValueError(f"Duplicate step id: {step.step_id}")
        for dep in step.requires:
            if dep not in seen:
                raise ValueError(f"Step {step.step_id} requires {dep}, which is not declared before it")
        seen.append(step.step_id)

    if only is not None and only not in seen:
        raise UnknownStepError(only, seen)


def run_pipeline(
    *,
    steps: Sequence[Step],
    ctx: Any,
    only: Optional[str] = None,
    force: bool = False,
) -> RunReport:
    """Run steps in declared order with idempotency and severity semantics."""

    validate_plan(steps, only)
    report = RunReport(dry_run=bool(ctx.dry_run))

    for step in steps:
        if only is not None and step.step_id != only:
            continue

        failed_deps = [d for d in step.requires if report.outcome_of(d) is Outcome.FAILED]
        if failed_deps:
            logger.error("Not running %s: dependency %s failed", step.step_id, ", ".join(failed_deps))
            result = report.add(
                StepResult(
                    step_id=step.step_id,
                    outcome=Outcome.FAILED,
                    best_effort=step.best_effort,
                    error=f"dependency failed: {', '.join(failed_deps)}",
                )
            )
        else:
            result = report.add(_run_step(step, ctx, force=force))

        if result.outcome is Outcome.FAILED and not step.best_effort:
            logger.error("Required step %s failed; aborting run", step.step_id)
            report.aborted = True
            break

    return report


def _run_step(step: Step, ctx: Any, *, force: bool) -> StepResult:
    started = time.monotonic()
    ctx.cmd.start_budget(ctx.cfg.step_timeout)
    try:
        result = _attempt(step, ctx, force=force)
    finally:
        ctx.cmd.clear_budget()
    result.duration = round(time.monotonic() - started, 3)
    return result


def _attempt(step: Step, ctx: Any, *, force: bool) -> StepResult:
    try:
        if (not force) and step.is_done(ctx):
            logger.info("Skipping step %s (already done)", step.step_id)
            return StepResult(step.step_id, Outcome.SKIPPED, step.best_effort, "already done")

        if ctx.dry_run:
            lines = step.preview(ctx)
            for line in lines:
                logger.info("[dry-run] %s: %s", step.step_id, line)
            return StepResult(step.step_id, Outcome.APPLIED, step.best_effort, "dry run: " + "; ".join(lines))

        logger.info("Running step %s", step.step_id)
        detail = step.run(ctx) or ""
        return StepResult(step.step_id, Outcome.APPLIED, step.best_effort, detail)
    except Exception as e:
        expected = isinstance(e, (ProvisionError, OSError))
        error = str(e) if expected else f"{type(e).__name__}: {e}"
        level = logging.WARNING if step.best_effort else logging.ERROR
        logger.log(level, "Step %s failed: %s", step.step_id, error, exc_info=not expected)
        return StepResult(step.step_id, Outcome.FAILED, step.best_effort, error=error)
