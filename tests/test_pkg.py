from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeRunner, fail, ok
from workspace_setup.lib.apt_repo import render_source_line
from workspace_setup.lib.pkg import AptPackageManager, get_package_manager
from workspace_setup.models import AptRepository, PackageSpec

INSTALLED = ok("install ok installed\t1.2.3-1")
CANDIDATE = ok("jq:\n  Installed: (none)\n  Candidate: 1.7.1-3\n")
NO_CANDIDATE = ok("tofu:\n  Installed: (none)\n  Candidate: (none)\n")


def _apt(runner: FakeRunner, tmp_path: Path) -> AptPackageManager:
    return AptPackageManager(
        runner,
        retry_backoff=0,
        sources_dir=str(tmp_path / "sources"),
        keyrings_dir=str(tmp_path / "keyrings"),
        sleep=lambda s: None,
    )


def _installs(runner: FakeRunner) -> list:
    return [c.argv[-1] for c in runner.calls if "install" in c.argv and "apt-get" in c.argv]


def test_already_installed_is_present(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[INSTALLED])
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("git")])

    assert results["git"].status == "present"
    assert runner.calls == []


def test_version_constraint_uses_glob(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[INSTALLED])
    apt = _apt(runner, tmp_path)
    assert apt.is_installed(PackageSpec("git", version="1.2.*"))
    assert not apt.is_installed(PackageSpec("git", version="2.*"))


def test_missing_package_updates_once_then_installs(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[fail()]).on("apt-cache", results=[CANDIDATE])
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("jq"), PackageSpec("fzf")])

    assert {r.status for r in results.values()} == {"installed"}
    updates = [c for c in runner.calls if c.argv[-1] == "update"]
    assert len(updates) == 1
    assert _installs(runner) == ["jq", "fzf"]
    assert all(c.sudo for c in runner.calls)
    assert runner.calls[0].argv[:2] == ["DEBIAN_FRONTEND=noninteractive", "apt-get"]


def test_pinned_version_is_passed_to_apt(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[fail()]).on("apt-cache", results=[CANDIDATE])
    _apt(runner, tmp_path).ensure_installed([PackageSpec("jq", version="1.7.1-3")])
    assert _installs(runner) == ["jq=1.7.1-3"]


def test_optional_without_candidate_is_a_soft_failure(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[fail()]).on("apt-cache", results=[NO_CANDIDATE])
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("tofu", optional=True)])

    assert results["tofu"].status == "failed"
    assert results["tofu"].optional
    assert _installs(runner) == []


def test_required_set_overrides_optional_flag(tmp_path) -> None:
    runner = FakeRunner().on("dpkg-query", results=[fail()]).on("apt-cache", results=[NO_CANDIDATE])
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("fish", optional=True)], required={"fish"})
    assert not results["fish"].optional


def test_install_is_retried_once(tmp_path) -> None:
    runner = (
        FakeRunner()
        .on("dpkg-query", results=[fail()])
        .on("apt-cache", results=[CANDIDATE])
        .on("install", "jq", results=[fail(100, "Could not get lock"), ok()])
    )
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("jq")])
    assert results["jq"].status == "installed"
    assert _installs(runner) == ["jq", "jq"]


def test_install_failing_twice_is_failed(tmp_path) -> None:
    runner = (
        FakeRunner()
        .on("dpkg-query", results=[fail()])
        .on("apt-cache", results=[CANDIDATE])
        .on("install", "jq", results=[fail(100, "Could not get lock")])
    )
    results = _apt(runner, tmp_path).ensure_installed([PackageSpec("jq")])
    assert results["jq"].status == "failed"
    assert "Could not get lock" in results["jq"].error


def test_pending_upgrades_parses_simulation(tmp_path) -> None:
    sim = ok(
        "Reading package lists...\n"
        "Inst libc6 [2.39-0ubuntu8.3] (2.39-0ubuntu8.4 Ubuntu:24.04/noble-updates [amd64])\n"
        "Inst curl [8.5.0-2ubuntu10.5] (8.5.0-2ubuntu10.6 Ubuntu:24.04/noble-updates [amd64])\n"
        "Conf libc6 (2.39-0ubuntu8.4 Ubuntu:24.04/noble-updates [amd64])\n"
    )
    runner = FakeRunner().on("-s", "upgrade", results=[sim])
    assert _apt(runner, tmp_path).pending_upgrades() == ["libc6", "curl"]


def test_add_repository_dearmors_key_and_writes_list(tmp_path) -> None:
    repo = AptRepository(
        name="google-chrome",
        uri="http://dl.google.com/linux/chrome/deb/",
        suite="stable",
        key_url="https://dl.google.com/linux/linux_signing_key.pub",
        arch="amd64",
    )
    runner = FakeRunner().on("curl", results=[ok("-----BEGIN PGP PUBLIC KEY BLOCK-----\n")])
    _apt(runner, tmp_path).add_repository(repo)

    gpg = next(c for c in runner.calls if c.argv[0] == "gpg")
    assert gpg.input_text.startswith("-----BEGIN PGP")
    assert gpg.argv[-1] == str(tmp_path / "keyrings" / "google-chrome.gpg")

    tee = next(c for c in runner.calls if c.argv[0] == "tee")
    assert tee.argv[1] == str(tmp_path / "sources" / "google-chrome.list")
    assert tee.input_text == (
        f"deb [arch=amd64 signed-by={tmp_path / 'keyrings' / 'google-chrome.gpg'}] "
        "http://dl.google.com/linux/chrome/deb/ stable main\n"
    )


def test_repository_registered_checks_list_and_keyring(tmp_path) -> None:
    repo = AptRepository(name="r", uri="http://example.invalid/deb", suite="stable", key_url="http://k", arch=None)
    apt = _apt(FakeRunner(), tmp_path)
    assert not apt.repository_registered(repo)

    (tmp_path / "sources").mkdir()
    (tmp_path / "keyrings").mkdir()
    keyring = tmp_path / "keyrings" / "r.gpg"
    (tmp_path / "sources" / "r.list").write_text(render_source_line(repo, keyring))
    assert not apt.repository_registered(repo)

    keyring.write_bytes(b"key")
    assert apt.repository_registered(repo)


CHROME_POSTINST_LIST = """\
### THIS FILE IS AUTOMATICALLY CONFIGURED ###
# You may comment out this entry, but any other modifications may be lost.
deb [arch=amd64] https://dl.google.com/linux/chrome/deb/ stable main
"""


def _chrome() -> AptRepository:
    return AptRepository(
        name="google-chrome",
        uri="http://dl.google.com/linux/chrome/deb/",
        suite="stable",
        key_url="https://dl.google.com/linux/linux_signing_key.pub",
        arch="amd64",
    )


def test_list_rewritten_by_vendor_still_counts_as_registered(tmp_path) -> None:
    (tmp_path / "sources").mkdir()
    (tmp_path / "sources" / "google-chrome.list").write_text(CHROME_POSTINST_LIST)
    assert _apt(FakeRunner(), tmp_path).repository_registered(_chrome())


def test_matching_line_in_another_list_counts(tmp_path) -> None:
    (tmp_path / "sources").mkdir()
    (tmp_path / "sources" / "extras.list").write_text(
        "deb-src http://dl.google.com/linux/chrome/deb stable main\n"
        "deb http://dl.google.com/linux/chrome/deb stable main  # added by hand\n"
    )
    assert _apt(FakeRunner(), tmp_path).repository_registered(_chrome())


def test_commented_or_different_suite_does_not_count(tmp_path) -> None:
    (tmp_path / "sources").mkdir()
    (tmp_path / "sources" / "google-chrome.list").write_text(
        "# deb [arch=amd64] http://dl.google.com/linux/chrome/deb/ stable main\n"
        "deb [arch=amd64] http://dl.google.com/linux/chrome/deb/ beta main\n"
    )
    assert not _apt(FakeRunner(), tmp_path).repository_registered(_chrome())


def test_only_apt_is_supported() -> None:
    assert isinstance(get_package_manager("apt", FakeRunner()), AptPackageManager)
    with pytest.raises(ValueError):
        get_package_manager("dnf", FakeRunner())
