from __future__ import annotations

import logging
import pwd
from typing import List, Optional

from ..context import StepCtx
from .base import BaseStep

logger = logging.getLogger(__name__)


def current_login_shell(user: str) -> Optional[str]:
    try:
        return pwd.getpwnam(user).pw_shell
    except KeyError:
        return None


class DefaultShellStep(BaseStep):
    kind = "login_shell"
    description = "Make fish the login shell"
    needs_packages = ("fish",)

    def is_done(self, ctx: StepCtx) -> bool:
        return current_login_shell(ctx.host.user) == ctx.cfg.login_shell

    def preview(self, ctx: StepCtx) -> List[str]:
        return [f"would run chsh -s {ctx.cfg.login_shell} {ctx.host.user}"]

    def run(self, ctx: StepCtx) -> Optional[str]:
        ctx.cmd.run(["chsh", "-s", ctx.cfg.login_shell, ctx.host.user], sudo=True)
        return f"login shell for {ctx.host.user} is now {ctx.cfg.login_shell}"
