from __future__ import annotations

import pytest

from dotfiles_installer.errors import DependencyError, PackageManagerError
from dotfiles_installer.lib import pkg
from dotfiles_installer.lib.pkg import (
    AptManager,
    BrewManager,
    DnfManager,
    PacmanManager,
    get_package_manager,
    map_package_name,
)

from tests._fixtures.fakes import FakeRunner


@pytest.fixture
def as_root(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pkg.os, "geteuid", lambda: 0, raising=False)


@pytest.fixture
def as_user(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pkg.os, "geteuid", lambda: 1000, raising=False)


def test_get_package_manager_selects_variant() -> None:
    runner = FakeRunner()
    assert isinstance(get_package_manager("apt", runner=runner), AptManager)
    assert isinstance(get_package_manager("dnf", runner=runner), DnfManager)
    assert get_package_manager("pacman", runner=runner).name() == "pacman"


def test_get_package_manager_unknown() -> None:
    with pytest.raises(PackageManagerError, match="unsupported"):
        get_package_manager("zypper")
    with pytest.raises(PackageManagerError, match="none detected"):
        get_package_manager("")


def test_map_package_name() -> None:
    assert map_package_name("fd", "apt") == "fd-find"
    assert map_package_name("fd", "brew") == "fd"
    assert map_package_name("tmux", "dnf") == "tmux"


def test_apt_install_uses_sudo_for_non_root(as_user: None) -> None:
    runner = FakeRunner()
    AptManager(runner=runner).install("fd", "tmux")
    assert runner.calls == [["sudo", "apt-get", "install", "-y", "fd-find", "tmux"]]


def test_apt_install_without_sudo_as_root(as_root: None) -> None:
    runner = FakeRunner()
    AptManager(runner=runner).install("tmux")
    assert runner.calls == [["apt-get", "install", "-y", "tmux"]]


def test_brew_never_uses_sudo(as_user: None) -> None:
    runner = FakeRunner()
    BrewManager(runner=runner).install("fd")
    assert runner.calls == [["brew", "install", "fd"]]


def test_pacman_install_skips_already_installed(as_root: None) -> None:
    runner = FakeRunner()
    PacmanManager(runner=runner).install("git")
    assert runner.calls[0][:4] == ["pacman", "-S", "--needed", "--noconfirm"]


def test_install_failure_raises_dependency_error(as_root: None) -> None:
    runner = FakeRunner()
    runner.respond(["apt-get", "install"], returncode=100, stderr="E: Unable to locate package nope")
    with pytest.raises(DependencyError, match="nope"):
        AptManager(runner=runner).install("nope")


def test_is_installed_uses_query_exit_code() -> None:
    runner = FakeRunner()
    runner.respond(["rpm", "-q", "missing"], returncode=1)
    dnf = DnfManager(runner=runner)
    assert dnf.is_installed("git") is True
    assert dnf.is_installed("missing") is False
    assert runner.calls[0] == ["rpm", "-q", "git"]


def test_dnf_check_update_exit_100_is_success(as_root: None) -> None:
    runner = FakeRunner()
    runner.respond(["dnf", "check-update"], returncode=100)
    DnfManager(runner=runner).update()
    assert runner.calls == [["dnf", "check-update", "-y"]]


def test_apt_update_failure(as_root: None) -> None:
    runner = FakeRunner()
    runner.respond(["apt-get", "update"], returncode=1, stderr="network down")
    with pytest.raises(DependencyError, match="network down"):
        AptManager(runner=runner).update()
