from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from ..config import SetupConfig
from ..context import StepCtx
from ..lib.env import HostEnv
from ..lib.files import is_current, materialize
from ..models import FileArtifact
from .base import BaseStep

logger = logging.getLogger(__name__)


class ArtifactsStep(BaseStep):
    """Materialize one artifact group (shell rc files, fish functions, prompt config).

    Artifacts are rendered when the plan is built, so a missing template or
    an undefined placeholder is reported before anything runs.
    """

    kind = "artifacts"

    def __init__(self, step_id: str, *, artifacts: Iterable[FileArtifact] = (), **kw: Any) -> None:
        super().__init__(step_id, **kw)
        self.artifacts = list(artifacts)

    @classmethod
    def from_manifest(cls, entry: Mapping[str, Any], cfg: SetupConfig, host: HostEnv) -> "ArtifactsStep":
        group = entry.get("group")
        if not group:
            raise ValueError(f"{entry['id']}: artifacts step needs a group")
        try:
            artifacts = cfg.artifacts(str(group), host)
        except KeyError as e:
            raise ValueError(f"{entry['id']}: {e.args[0]}") from e
        return cls(
            str(entry["id"]),
            artifacts=artifacts,
            best_effort=entry.get("best_effort"),
            requires=entry.get("requires") or (),
            options={"group": str(group)},
        )

    @property
    def description(self) -> str:  # type: ignore[override]
        return f"Write {self.options.get('group', 'managed')} files"

    def _stale(self) -> List[FileArtifact]:
        return [a for a in self.artifacts if not is_current(a, Path(a.path))]

    def is_done(self, ctx: StepCtx) -> bool:
        return not self._stale()

    def preview(self, ctx: StepCtx) -> List[str]:
        return [
            f"would {'update block ' + repr(a.marker) + ' in' if not a.exclusive else 'write'} {a.path}"
            for a in self._stale()
        ]

    def run(self, ctx: StepCtx) -> Optional[str]:
        changed = [a.path for a in self.artifacts if materialize(a, Path(a.path))]
        return f"wrote {len(changed)} file(s)"
