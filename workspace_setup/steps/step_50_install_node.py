from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..context import StepCtx
from ..lib.remote import run_with_retry
from .base import BaseStep

logger = logging.getLogger(__name__)

# nvm is a shell function, so every call sources it first.
_NVM_PRELUDE = '. "$NVM_DIR/nvm.sh" && '


def nvm_env(ctx: StepCtx) -> Dict[str, str]:
    return {"NVM_DIR": str(ctx.expand(ctx.cfg.nvm_dir)), "NODE_VERSION": ctx.cfg.node_version}


def node_prefix(ctx: StepCtx) -> Path:
    return ctx.expand(ctx.cfg.nvm_dir) / "versions" / "node" / ctx.cfg.node_version


class InstallNodeStep(BaseStep):
    kind = "node"
    description = "Install Node.js through nvm and make it the default"

    def is_done(self, ctx: StepCtx) -> bool:
        return (node_prefix(ctx) / "bin" / "node").exists()

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would run nvm install {ctx.cfg.node_version}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        script = _NVM_PRELUDE + 'nvm install "$NODE_VERSION" && nvm alias default "$NODE_VERSION"'
        run_with_retry(ctx.cmd, ["bash", "-c", script], env=nvm_env(ctx), retry_backoff=ctx.cfg.retry_backoff)
        return f"node {ctx.cfg.node_version}"


class NpmGlobalsStep(BaseStep):
    kind = "npm_globals"
    description = "Install global npm packages for the managed Node version"

    def _missing(self, ctx: StepCtx) -> List[str]:
        modules = node_prefix(ctx) / "lib" / "node_modules"
        return [p for p in ctx.cfg.npm_globals if not (modules / p).is_dir()]

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._missing(ctx)

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would npm install -g {' '.join(self._missing(ctx))}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        missing = self._missing(ctx)
        script = _NVM_PRELUDE + 'nvm exec "$NODE_VERSION" npm install -g "$@"'
        run_with_retry(
            ctx.cmd,
            ["bash", "-c", script, "bash", *missing],
            env=nvm_env(ctx),
            retry_backoff=ctx.cfg.retry_backoff,
        )
        return f"installed {', '.join(missing)}"
