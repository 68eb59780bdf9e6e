from __future__ import annotations

from pathlib import Path

import pytest

from dotfiles_installer.errors import DetectionError
from dotfiles_installer.lib.platform_detect import detect_platform, normalize_arch, parse_os_release

FEDORA = 'NAME="Fedora Linux"\nID=fedora\nVERSION_ID=40\n'


def _which(*present: str):
    return lambda name: f"/usr/bin/{name}" if name in present else None


def test_parse_os_release_strips_quotes() -> None:
    info = parse_os_release('# comment\nID="ubuntu"\nVERSION_ID=\'22.04\'\n\nbroken line\n')
    assert info == {"ID": "ubuntu", "VERSION_ID": "22.04"}


@pytest.mark.parametrize(
    "raw,expected",
    [("x86_64", "amd64"), ("aarch64", "arm64"), ("armv7l", "arm"), ("i686", "386"), ("riscv64", "riscv64")],
)
def test_normalize_arch(raw: str, expected: str) -> None:
    assert normalize_arch(raw) == expected


def test_detect_fedora_prefers_dnf(tmp_path: Path) -> None:
    release = tmp_path / "os-release"
    release.write_text(FEDORA, encoding="utf-8")

    p = detect_platform(
        system="Linux",
        machine="x86_64",
        os_release_path=release,
        proc_version_path=tmp_path / "missing",
        env={},
        which=_which("dnf", "yum"),
    )

    assert p.os == "linux"
    assert p.distro == "fedora"
    assert p.distro_version == "40"
    assert p.package_manager == "dnf"
    assert p.architecture == "amd64"
    assert p.is_wsl is False


def test_detect_apt_through_apt_get(tmp_path: Path) -> None:
    p = detect_platform(
        system="Linux",
        machine="aarch64",
        os_release_path=tmp_path / "missing",
        proc_version_path=tmp_path / "missing",
        env={},
        which=_which("apt-get"),
    )
    assert p.package_manager == "apt"
    assert p.distro == ""


def test_detect_wsl_from_proc_version(tmp_path: Path) -> None:
    proc = tmp_path / "version"
    proc.write_text("Linux version 5.15.90.1-microsoft-standard-WSL2", encoding="utf-8")
    p = detect_platform(
        system="Linux",
        machine="x86_64",
        os_release_path=tmp_path / "missing",
        proc_version_path=proc,
        env={},
        which=_which(),
    )
    assert p.is_wsl is True
    assert p.package_manager == ""


def test_detect_wsl_from_env(tmp_path: Path) -> None:
    p = detect_platform(
        system="Linux",
        machine="x86_64",
        os_release_path=tmp_path / "missing",
        proc_version_path=tmp_path / "missing",
        env={"WSL_DISTRO_NAME": "Ubuntu"},
        which=_which(),
    )
    assert p.is_wsl is True


def test_detect_darwin_uses_brew() -> None:
    p = detect_platform(system="Darwin", machine="arm64", env={}, which=_which("brew", "dnf"))
    assert p.os == "darwin"
    assert p.distro == "macos"
    assert p.package_manager == "brew"


def test_detect_fails_without_os() -> None:
    with pytest.raises(DetectionError):
        detect_platform(system="", machine="x86_64", env={}, which=_which())


def test_describe_mentions_wsl_and_missing_manager(tmp_path: Path) -> None:
    p = detect_platform(
        system="Linux",
        machine="x86_64",
        os_release_path=tmp_path / "missing",
        proc_version_path=tmp_path / "missing",
        env={"WSL_INTEROP": "/run/WSL/1"},
        which=_which(),
    )
    text = p.describe()
    assert "none detected" in text
    assert "WSL" in text
