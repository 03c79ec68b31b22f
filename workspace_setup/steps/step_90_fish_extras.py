from __future__ import annotations

import hashlib
import logging
import shlex
from typing import List, Optional

from ..context import StepCtx
from .base import BaseStep

logger = logging.getLogger(__name__)


class FishCompletionsStep(BaseStep):
    kind = "fish_completions"
    description = "Generate fish completions from man pages"
    default_best_effort = True
    needs_packages = ("fish",)

    def is_done(self, ctx: StepCtx) -> bool:
        generated = ctx.expand("~/.local/share/fish/generated_completions")
        return generated.is_dir() and any(generated.iterdir())

    def run(self, ctx: StepCtx) -> Optional[str]:
        ctx.cmd.run(["fish", "-c", "fish_update_completions"])
        return None


class TidePromptStep(BaseStep):
    """Run `tide configure --auto` with the manifest's options.

    tide's own install writes default prompt variables, so their presence
    says nothing about our options. After configuring, a fingerprint of the
    options is stored as a fish universal variable; the step is done when
    fish_variables carries the fingerprint of the current options.
    """

    kind = "tide_prompt"
    description = "Configure the tide prompt"
    default_best_effort = True
    needs_packages = ("fish",)

    STAMP_VAR = "workspace_setup_tide_options"

    def _fingerprint(self, ctx: StepCtx) -> str:
        return hashlib.sha1("\0".join(ctx.cfg.tide_options).encode("utf-8")).hexdigest()[:16]

    def is_done(self, ctx: StepCtx) -> bool:
        variables = ctx.expand("~/.config/fish/fish_variables")
        if not variables.is_file():
            return False
        lines = variables.read_text(encoding="utf-8", errors="replace").splitlines()
        return f"SETUVAR {self.STAMP_VAR}:{self._fingerprint(ctx)}" in lines

    def _command(self, ctx: StepCtx) -> str:
        return " ".join(["tide", "configure", "--auto", *(shlex.quote(o) for o in ctx.cfg.tide_options)])

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would run: {self._command(ctx)}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        stamp = f"set -U {self.STAMP_VAR} {self._fingerprint(ctx)}"
        ctx.cmd.run(["fish", "-c", f"{self._command(ctx)}; and {stamp}"])
        return None
