from __future__ import annotations

import logging
from typing import List, Optional

from ..config import SetupConfig
from ..context import StepCtx
from ..lib.remote import fetch_text, run_with_retry
from ..models import RemoteInstaller
from .base import BaseStep

logger = logging.getLogger(__name__)


class RemoteInstallerStep(BaseStep):
    """Download an installer script and pipe it to a shell (pulumi, pyenv, nvm)."""

    kind = "remote_installer"
    needs_packages = ("curl",)

    @property
    def description(self) -> str:  # type: ignore[override]
        return f"Run the {self.options.get('installer')} installer script"

    def check(self, cfg: SetupConfig) -> None:
        name = self.options.get("installer")
        if name not in cfg.remote_installers:
            raise ValueError(f"{self.step_id}: unknown remote installer {name!r}")

    def _installer(self, ctx: StepCtx) -> RemoteInstaller:
        return ctx.cfg.remote_installers[self.options["installer"]]

    def is_done(self, ctx: StepCtx) -> bool:
        return ctx.expand(self._installer(ctx).creates).exists()

    def preview(self, ctx: StepCtx) -> List[str]:
        inst = self._installer(ctx)
        return [f"would fetch {inst.url} and run it with {inst.shell}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        inst = self._installer(ctx)
        script = fetch_text(ctx.cmd, inst.url, retry_backoff=ctx.cfg.retry_backoff)

        argv = [inst.shell, "-s"]
        if inst.args:
            argv += ["--", *inst.args]
        env = {k: str(ctx.expand(v)) for k, v in inst.env}
        run_with_retry(ctx.cmd, argv, env=env, input_text=script, retry_backoff=ctx.cfg.retry_backoff)

        if not ctx.expand(inst.creates).exists():
            logger.warning("%s installer finished but %s is missing", inst.name, inst.creates)
        return f"installed {inst.name}"
