from __future__ import annotations

import logging
from typing import List, Optional

from ..context import StepCtx
from .base import BaseStep

logger = logging.getLogger(__name__)


class SystemUpgradeStep(BaseStep):
    kind = "system_upgrade"
    description = "Refresh the package index and apply pending upgrades"

    def is_done(self, ctx: StepCtx) -> bool:
        return not ctx.pkg.pending_upgrades()

    def preview(self, ctx: StepCtx) -> List[str]:
        pending = ctx.pkg.pending_upgrades()
        return [f"would upgrade {len(pending)} package(s): {', '.join(pending[:10])}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        ctx.pkg.update()
        pending = ctx.pkg.pending_upgrades()
        ctx.pkg.upgrade()
        logger.info("Upgraded %d package(s)", len(pending))
        return f"upgraded {len(pending)} package(s)"
