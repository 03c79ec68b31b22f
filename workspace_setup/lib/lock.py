from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO, Optional

from ..errors import PreflightError

logger = logging.getLogger(__name__)


class RunLock:
    """Exclusive advisory lock held for the duration of a provisioning run."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fh: Optional[IO[str]] = None

    def acquire(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(self.path, "a+", encoding="utf-8")
        except OSError as e:
            raise PreflightError(f"Cannot open lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            fh.close()
            raise PreflightError(f"Another workspace-setup run is in progress (lock: {self.path})") from e

        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        self._fh = fh
        logger.debug("Acquired run lock %s", self.path)

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
        logger.debug("Released run lock %s", self.path)

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
