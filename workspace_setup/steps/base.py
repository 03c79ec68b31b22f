from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config import SetupConfig
from ..context import StepCtx
from ..lib.env import HostEnv


class BaseStep:
    """Shared plumbing for manifest-built steps.

    Subclasses set `kind`, `description`, and implement is_done()/run().
    """

    kind = ""
    description = ""
    default_best_effort = False
    needs_packages: Tuple[str, ...] = ()

    def __init__(
        self,
        step_id: str,
        *,
        best_effort: Optional[bool] = None,
        requires: Iterable[str] = (),
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.step_id = step_id
        self.best_effort = self.default_best_effort if best_effort is None else bool(best_effort)
        self.requires = tuple(requires)
        self.options: Dict[str, Any] = dict(options or {})

    @classmethod
    def from_manifest(cls, entry: Mapping[str, Any], cfg: SetupConfig, host: HostEnv) -> "BaseStep":
        options = {k: v for k, v in entry.items() if k not in {"id", "kind", "best_effort", "requires"}}
        step = cls(
            str(entry["id"]),
            best_effort=entry.get("best_effort"),
            requires=entry.get("requires") or (),
            options=options,
        )
        step.check(cfg)
        return step

    def check(self, cfg: SetupConfig) -> None:
        """Validate options against the config. Raise ValueError on a bad entry."""

    def is_done(self, ctx: StepCtx) -> bool:
        raise NotImplementedError

    def run(self, ctx: StepCtx) -> Optional[str]:
        raise NotImplementedError

    def preview(self, ctx: StepCtx) -> List[str]:
        return [self.description]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.step_id}>"
