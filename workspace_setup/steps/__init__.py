from __future__ import annotations

from typing import Dict, List, Type

from ..config import SetupConfig
from ..lib.env import HostEnv
from .base import BaseStep
from .step_10_system_upgrade import SystemUpgradeStep
from .step_20_install_packages import InstallPackagesStep
from .step_30_register_repositories import RegisterRepositoriesStep
from .step_40_remote_installer import RemoteInstallerStep
from .step_50_install_node import InstallNodeStep, NpmGlobalsStep
from .step_60_default_shell import DefaultShellStep
from .step_65_fisher_plugins import FisherPluginsStep
from .step_70_create_directories import CreateDirectoriesStep
from .step_80_write_artifacts import ArtifactsStep
from .step_90_fish_extras import FishCompletionsStep, TidePromptStep

STEP_KINDS: Dict[str, Type[BaseStep]] = {
    cls.kind: cls
    for cls in (
        SystemUpgradeStep,
        InstallPackagesStep,
        RegisterRepositoriesStep,
        RemoteInstallerStep,
        InstallNodeStep,
        NpmGlobalsStep,
        DefaultShellStep,
        FisherPluginsStep,
        CreateDirectoriesStep,
        ArtifactsStep,
        FishCompletionsStep,
        TidePromptStep,
    )
}


def build_steps(cfg: SetupConfig, host: HostEnv) -> List[BaseStep]:
    """Instantiate the manifest's `steps:` list in declared order."""

    steps: List[BaseStep] = []
    for entry in cfg.step_entries:
        kind = str(entry["kind"])
        if kind not in STEP_KINDS:
            raise ValueError(f"Step {entry['id']}: unknown kind {kind!r}")
        steps.append(STEP_KINDS[kind].from_manifest(entry, cfg, host))
    return steps


__all__ = [
    "STEP_KINDS",
    "build_steps",
    "BaseStep",
    "SystemUpgradeStep",
    "InstallPackagesStep",
    "RegisterRepositoriesStep",
    "RemoteInstallerStep",
    "InstallNodeStep",
    "NpmGlobalsStep",
    "DefaultShellStep",
    "FisherPluginsStep",
    "CreateDirectoriesStep",
    "ArtifactsStep",
    "FishCompletionsStep",
    "TidePromptStep",
]
