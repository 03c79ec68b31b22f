from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Protocol, Sequence

from ..models import AptRepository, PackageResult, PackageSpec
from .apt_repo import (
    DEFAULT_KEYRINGS_DIR,
    DEFAULT_SOURCES_DIR,
    keyring_path,
    list_path,
    parse_source_line,
    render_source_line,
    source_matches,
)
from .command import CommandError, CommandRunner, call_with_retry
from .remote import fetch_text

logger = logging.getLogger(__name__)


class PackageManager(Protocol):
    name: str

    def is_installed(self, spec: PackageSpec) -> bool:
        ...

    def has_candidate(self, spec: PackageSpec) -> bool:
        ...

    def update(self) -> None:
        ...

    def upgrade(self) -> None:
        ...

    def pending_upgrades(self) -> list[str]:
        ...

    def ensure_installed(
        self, specs: Sequence[PackageSpec], *, required: Iterable[str] = ()
    ) -> Dict[str, PackageResult]:
        ...

    def repository_registered(self, repo: AptRepository) -> bool:
        ...

    def add_repository(self, repo: AptRepository) -> None:
        ...


class AptPackageManager:
    """apt/dpkg adapter. Mutating calls go through sudo; probes do not."""

    name = "apt"

    def __init__(
        self,
        runner: CommandRunner,
        *,
        retry_backoff: float = 5.0,
        sources_dir: str = DEFAULT_SOURCES_DIR,
        keyrings_dir: str = DEFAULT_KEYRINGS_DIR,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.runner = runner
        self.retry_backoff = retry_backoff
        self.sources_dir = sources_dir
        self.keyrings_dir = keyrings_dir
        self._sleep = sleep
        self._index_fresh = False

    def _retry(self, fn, what: str):
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return call_with_retry(fn, what=what, attempts=2, backoff=self.retry_backoff, **kwargs)

    def _apt(self, *args: str) -> None:
        self.runner.run(
            ["DEBIAN_FRONTEND=noninteractive", "apt-get", "-y", "-o", "Dpkg::Options::=--force-confold", *args],
            sudo=True,
        )

    # -- probes --

    def installed_version(self, name: str) -> Optional[str]:
        r = self.runner.query(["dpkg-query", "-W", "-f=${Status}\t${Version}", name])
        if r.returncode != 0 or "\t" not in r.stdout:
            return None
        status, version = r.stdout.split("\t", 1)
        if "install ok installed" not in status:
            return None
        return version.strip()

    def is_installed(self, spec: PackageSpec) -> bool:
        version = self.installed_version(spec.name)
        if version is None:
            return False
        if spec.version:
            return fnmatch.fnmatchcase(version, spec.version)
        return True

    def has_candidate(self, spec: PackageSpec) -> bool:
        """Return True if apt can resolve the package from a configured repository."""
        r = self.runner.query(["apt-cache", "policy", spec.name])
        if r.returncode != 0:
            return False
        for line in r.stdout.splitlines():
            line = line.strip()
            if line.startswith("Candidate:"):
                return line.split(":", 1)[1].strip() not in {"", "(none)"}
        return False

    def pending_upgrades(self) -> list[str]:
        r = self.runner.query(["apt-get", "-s", "upgrade"])
        if r.returncode != 0:
            raise CommandError(r.argv, r.returncode, r.stderr)
        return [line.split()[1] for line in r.stdout.splitlines() if line.startswith("Inst ")]

    def repository_registered(self, repo: AptRepository) -> bool:
        """True when a deb line under sources_dir points at repo's uri, suite and components.

        Vendor packages may rewrite their own list file (Chrome's postinst
        adds a header and drops our options), so lines are compared by
        meaning, not text. A line naming a signed-by keyring only counts
        once that keyring exists.
        """

        sources = Path(self.sources_dir)
        if not sources.is_dir():
            return False
        for lp in sorted(sources.glob("*.list")):
            try:
                text = lp.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug("Cannot read %s: %s", lp, e)
                continue
            for line in text.splitlines():
                entry = parse_source_line(line)
                if entry is None or not source_matches(repo, entry):
                    continue
                signed_by = entry.options.get("signed-by")
                if signed_by and not Path(signed_by).is_file():
                    continue
                return True
        return False

    # -- mutations --

    def update(self) -> None:
        self._retry(lambda: self._apt("update"), "apt-get update")
        self._index_fresh = True

    def upgrade(self) -> None:
        self._retry(lambda: self._apt("upgrade"), "apt-get upgrade")

    def add_repository(self, repo: AptRepository) -> None:
        keyring = None
        if repo.key_url:
            keyring = keyring_path(repo, self.keyrings_dir)
            key = fetch_text(self.runner, repo.key_url, retry_backoff=self.retry_backoff, sleep=self._sleep)
            self.runner.run(["install", "-d", "-m", "0755", self.keyrings_dir], sudo=True)
            self.runner.run(["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)], input_text=key, sudo=True)

        line = render_source_line(repo, keyring)
        self.runner.run(["tee", str(list_path(repo, self.sources_dir))], input_text=line, sudo=True)
        logger.info("Registered apt repository %s: %s", repo.name, line.strip())
        # New sources invalidate the package index.
        self._index_fresh = False

    def ensure_installed(
        self, specs: Sequence[PackageSpec], *, required: Iterable[str] = ()
    ) -> Dict[str, PackageResult]:
        """Install whatever is missing; return one result per package.

        A package is treated as optional only if its spec says so and no
        caller listed it in `required`.
        """

        must_have: FrozenSet[str] = frozenset(required)
        results: Dict[str, PackageResult] = {}
        missing: list[PackageSpec] = []

        for spec in specs:
            optional = spec.optional and spec.name not in must_have
            if self.is_installed(spec):
                results[spec.name] = PackageResult(spec.name, "present", optional)
            else:
                missing.append(spec)

        if not missing:
            return results

        if not self._index_fresh:
            try:
                self.update()
            except CommandError as e:
                logger.warning("apt-get update failed: %s", e)

        for spec in missing:
            optional = spec.optional and spec.name not in must_have
            if not self.has_candidate(spec):
                result = PackageResult(spec.name, "failed", optional, "no installation candidate")
            else:
                try:
                    self._retry(lambda s=spec: self._apt("install", s.install_arg), f"install {spec.name}")
                    result = PackageResult(spec.name, "installed", optional)
                except CommandError as e:
                    result = PackageResult(spec.name, "failed", optional, str(e))

            if not result.ok:
                if optional:
                    logger.warning("Optional package %s not installed: %s", spec.name, result.error)
                else:
                    logger.error("Required package %s not installed: %s", spec.name, result.error)
            results[spec.name] = result

        return results


def get_package_manager(name: str, runner: CommandRunner, **kwargs) -> PackageManager:
    if name == "apt":
        return AptPackageManager(runner, **kwargs)
    raise ValueError(f"Unsupported package manager: {name}")
