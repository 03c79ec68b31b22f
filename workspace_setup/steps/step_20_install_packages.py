from __future__ import annotations

import logging
from typing import List, Optional

from ..context import StepCtx
from ..errors import PackageInstallError
from ..models import PackageSpec
from .base import BaseStep

logger = logging.getLogger(__name__)


class InstallPackagesStep(BaseStep):
    kind = "packages"
    description = "Install system packages"

    def _specs(self, ctx: StepCtx) -> List[PackageSpec]:
        # Packages from a third-party repository are installed by a later
        # instance of this step with `source: <repo>` set.
        source = self.options.get("source")
        return [s for s in ctx.cfg.packages if s.source == source]

    def _is_optional(self, ctx: StepCtx, spec: PackageSpec) -> bool:
        return spec.optional and spec.name not in ctx.needed_packages

    def _outstanding(self, ctx: StepCtx) -> List[PackageSpec]:
        """Packages still to install.

        An optional package that apt cannot resolve is not outstanding: a rerun
        could not change that.
        """
        out = []
        for spec in self._specs(ctx):
            if ctx.pkg.is_installed(spec):
                continue
            if self._is_optional(ctx, spec) and not ctx.pkg.has_candidate(spec):
                continue
            out.append(spec)
        return out

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._outstanding(ctx)

    def preview(self, ctx: StepCtx) -> List[str]:
        names = [s.install_arg for s in self._outstanding(ctx)]
        return [f"would install {len(names)} package(s): {' '.join(names)}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        results = ctx.pkg.ensure_installed(self._specs(ctx), required=ctx.needed_packages)

        failed_required = [r.name for r in results.values() if not r.ok and not r.optional]
        if failed_required:
            raise PackageInstallError(results)

        installed = sorted(r.name for r in results.values() if r.status == "installed")
        skipped = sorted(r.name for r in results.values() if not r.ok)
        detail = f"installed {len(installed)}, already present {sum(r.status == 'present' for r in results.values())}"
        if skipped:
            detail += f", optional unavailable: {', '.join(skipped)}"
        return detail
