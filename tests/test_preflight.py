from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from workspace_setup.errors import PreflightError
from workspace_setup.preflight import parse_os_release, run_preflight

UBUNTU = 'PRETTY_NAME="Ubuntu 24.04.1 LTS"\nNAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\n'
MINT = 'NAME="Linux Mint"\nID=linuxmint\nID_LIKE="ubuntu debian"\n'
FEDORA = 'NAME="Fedora Linux"\nID=fedora\n'


def _cfg(make_cfg, tmp_path: Path, os_release: str, tools=()):
    p = tmp_path / "os-release"
    p.write_text(os_release)
    return make_cfg({"os_release_path": str(p), "required_tools": list(tools)})


def _which_all(name, path=None):
    return f"/usr/bin/{name}"


def test_parse_os_release() -> None:
    info = parse_os_release(UBUNTU + "# comment\n\n")
    assert info["ID"] == "ubuntu"
    assert info["PRETTY_NAME"] == "Ubuntu 24.04.1 LTS"


def test_ubuntu_passes(make_cfg, host, tmp_path) -> None:
    run_preflight(_cfg(make_cfg, tmp_path, UBUNTU, ["sudo"]), host, which=_which_all)


def test_ubuntu_derivative_passes_through_id_like(make_cfg, host, tmp_path) -> None:
    run_preflight(_cfg(make_cfg, tmp_path, MINT), host, which=_which_all)


def test_unsupported_os(make_cfg, host, tmp_path) -> None:
    with pytest.raises(PreflightError, match="Unsupported OS"):
        run_preflight(_cfg(make_cfg, tmp_path, FEDORA), host, which=_which_all)


def test_root_is_refused(make_cfg, host, tmp_path) -> None:
    with pytest.raises(PreflightError, match="root"):
        run_preflight(_cfg(make_cfg, tmp_path, UBUNTU), replace(host, uid=0), which=_which_all)


def test_missing_home(make_cfg, host, tmp_path) -> None:
    with pytest.raises(PreflightError, match="not writable"):
        run_preflight(_cfg(make_cfg, tmp_path, UBUNTU), replace(host, home=str(tmp_path / "gone")), which=_which_all)


def test_missing_tools_are_listed(make_cfg, host, tmp_path) -> None:
    seen = []

    def which(name, path=None):
        seen.append(path)
        return None if name == "apt-cache" else f"/usr/bin/{name}"

    with pytest.raises(PreflightError, match="apt-cache"):
        run_preflight(_cfg(make_cfg, tmp_path, UBUNTU, ["sudo", "apt-cache"]), host, which=which)
    assert set(seen) == {host.path}


def test_unreadable_os_release(make_cfg, host, tmp_path) -> None:
    cfg = make_cfg({"os_release_path": str(tmp_path / "missing")})
    with pytest.raises(PreflightError):
        run_preflight(cfg, host, which=_which_all)
