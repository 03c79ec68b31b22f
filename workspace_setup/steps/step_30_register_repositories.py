from __future__ import annotations

import logging
from typing import List, Optional

from ..config import SetupConfig
from ..context import StepCtx
from ..models import AptRepository
from .base import BaseStep

logger = logging.getLogger(__name__)


class RegisterRepositoriesStep(BaseStep):
    """Register third-party apt repositories (e.g. Google Chrome).

    Defaults to best-effort: a package from an unregistered repository simply
    has no install candidate later on.
    """

    kind = "repositories"
    description = "Register third-party package repositories"
    default_best_effort = True
    needs_packages = ("curl", "gnupg")

    def check(self, cfg: SetupConfig) -> None:
        unknown = [n for n in self.options.get("only") or [] if n not in cfg.repositories]
        if unknown:
            raise ValueError(f"{self.step_id}: unknown repositories: {', '.join(unknown)}")

    def _repos(self, ctx: StepCtx) -> List[AptRepository]:
        repos = ctx.cfg.repositories
        names = self.options.get("only")
        if names:
            return [repos[n] for n in names]
        return list(repos.values())

    def _pending(self, ctx: StepCtx) -> List[AptRepository]:
        return [r for r in self._repos(ctx) if not ctx.pkg.repository_registered(r)]

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._pending(ctx)

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would register {r.name} ({r.uri})" for r in self._pending(ctx)]

    def run(self, ctx: StepCtx) -> Optional[str]:
        added = []
        for repo in self._pending(ctx):
            ctx.pkg.add_repository(repo)
            added.append(repo.name)
        ctx.pkg.update()
        return f"registered {', '.join(added)}"
