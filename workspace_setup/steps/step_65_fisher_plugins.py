from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..context import StepCtx
from ..lib.remote import run_with_retry
from .base import BaseStep

logger = logging.getLogger(__name__)

FISHER = "jorgebucaran/fisher"


def installed_plugins(plugins_file: Path) -> set[str]:
    """Read fisher's fish_plugins file (one plugin per line)."""
    if not plugins_file.is_file():
        return set()
    return {
        line.strip().lower()
        for line in plugins_file.read_text(encoding="utf-8", errors="replace").splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    }


class FisherPluginsStep(BaseStep):
    kind = "fisher_plugins"
    description = "Install fisher and fish plugins"
    needs_packages = ("fish", "curl")

    def _plugins_file(self, ctx: StepCtx) -> Path:
        return ctx.expand("~/.config/fish/fish_plugins")

    def _missing(self, ctx: StepCtx) -> List[str]:
        have = installed_plugins(self._plugins_file(ctx))
        wanted = [FISHER, *[p for p in ctx.cfg.fisher_plugins if p.lower() != FISHER]]
        return [p for p in wanted if p.lower() not in have]

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._missing(ctx)

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would fisher install {p}" for p in self._missing(ctx)]

    def run(self, ctx: StepCtx) -> Optional[str]:
        missing = self._missing(ctx)
        backoff = ctx.cfg.retry_backoff
        if FISHER in missing:
            bootstrap = f"curl -sL {ctx.cfg.fisher_url} | source && fisher install {FISHER}"
            run_with_retry(ctx.cmd, ["fish", "-c", bootstrap], retry_backoff=backoff)
            missing.remove(FISHER)

        for plugin in missing:
            run_with_retry(ctx.cmd, ["fish", "-c", f"fisher install {plugin}"], retry_backoff=backoff)
        return f"installed {len(missing)} plugin(s)"
