from __future__ import annotations

from typing import Any, Dict


class ProvisionError(RuntimeError):
    """Base class for failures a step or the CLI knows how to report."""


class PreflightError(ProvisionError):
    """The host is unsuitable for provisioning (wrong user, OS, tooling, lock held)."""


class UnknownStepError(ProvisionError):
    def __init__(self, step_id: str, known: list[str]) -> None:
        super().__init__(f"Unknown step {step_id!r} (known: {', '.join(known)})")
        self.step_id = step_id
        self.known = known


class PackageInstallError(ProvisionError):
    """One or more required packages could not be installed."""

    def __init__(self, results: Dict[str, Any]) -> None:
        self.results = results
        failed = sorted(name for name, r in results.items() if not r.ok and not r.optional)
        super().__init__(f"Required package(s) failed: {', '.join(failed)}")


class FileWriteError(ProvisionError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = path
        self.reason = reason


class StepTimeoutError(ProvisionError):
    def __init__(self, seconds: float) -> None:
        super().__init__(f"Step exceeded its time budget of {seconds:g}s")
        self.seconds = seconds
