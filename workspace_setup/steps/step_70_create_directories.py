from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..context import StepCtx
from ..lib.files import ensure_dir
from .base import BaseStep

logger = logging.getLogger(__name__)


class CreateDirectoriesStep(BaseStep):
    kind = "directories"
    description = "Create workspace and config directories"

    def _missing(self, ctx: StepCtx) -> List[Path]:
        return [p for p in (ctx.expand(d) for d in ctx.cfg.directories) if not p.is_dir()]

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._missing(ctx)

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would create {p}" for p in self._missing(ctx)]

    def run(self, ctx: StepCtx) -> Optional[str]:
        created = [p for p in self._missing(ctx) if ensure_dir(p)]
        return f"created {len(created)} director{'y' if len(created) == 1 else 'ies'}"
