from __future__ import annotations

import logging
import os
from typing import Dict, List, Protocol, Sequence, Type

from ..errors import CommandError, DependencyError, PackageManagerError
from .command import Runner, command_exists, run_cmd

logger = logging.getLogger(__name__)

# Logical name -> manager-specific package name. Unmapped names pass through.
PACKAGE_NAME_MAP: Dict[str, Dict[str, str]] = {
    "neovim": {"dnf": "neovim", "yum": "neovim", "apt": "neovim", "brew": "neovim", "pacman": "neovim"},
    "fd": {"dnf": "fd-find", "yum": "fd-find", "apt": "fd-find", "brew": "fd", "pacman": "fd"},
    "ripgrep": {"dnf": "ripgrep", "yum": "ripgrep", "apt": "ripgrep", "brew": "ripgrep", "pacman": "ripgrep"},
}


def map_package_name(name: str, manager: str) -> str:
    return PACKAGE_NAME_MAP.get(name, {}).get(manager, name)


class PackageManager(Protocol):
    """Capability set every supported package manager provides."""

    def name(self) -> str:
        ...

    def is_available(self) -> bool:
        ...

    def install(self, *packages: str) -> None:
        ...

    def is_installed(self, package: str) -> bool:
        ...

    def update(self) -> None:
        ...

    def needs_sudo(self) -> bool:
        ...


class _ShellPackageManager:
    """Shared plumbing: name mapping, sudo prefix, runner."""

    manager_id = ""
    binary = ""
    install_argv: Sequence[str] = ()
    query_argv: Sequence[str] = ()
    update_argv: Sequence[str] = ()
    update_ok_codes: Sequence[int] = (0,)
    sudo = True

    def __init__(self, *, runner: Runner = run_cmd) -> None:
        self._runner = runner

    def name(self) -> str:
        return self.manager_id

    def is_available(self) -> bool:
        return command_exists(self.binary or self.manager_id)

    def needs_sudo(self) -> bool:
        return self.sudo

    def _privileged(self, argv: Sequence[str]) -> List[str]:
        if self.needs_sudo() and hasattr(os, "geteuid") and os.geteuid() != 0:
            return ["sudo", *argv]
        return list(argv)

    def install(self, *packages: str) -> None:
        if not packages:
            return
        mapped = [map_package_name(p, self.manager_id) for p in packages]
        try:
            self._runner(self._privileged([*self.install_argv, *mapped]))
        except CommandError as e:
            raise DependencyError(f"{self.manager_id} failed to install {', '.join(mapped)}: {e}") from e

    def is_installed(self, package: str) -> bool:
        mapped = map_package_name(package, self.manager_id)
        r = self._runner([*self.query_argv, mapped], check=False)
        return r.returncode == 0

    def update(self) -> None:
        r = self._runner(self._privileged(self.update_argv), check=False)
        if r.returncode not in self.update_ok_codes:
            raise DependencyError(f"{self.manager_id} update failed ({r.returncode}): {r.stderr.strip()}")


class AptManager(_ShellPackageManager):
    manager_id = "apt"
    binary = "apt-get"
    install_argv = ("apt-get", "install", "-y")
    query_argv = ("dpkg", "-s")
    update_argv = ("apt-get", "update")


class DnfManager(_ShellPackageManager):
    manager_id = "dnf"
    install_argv = ("dnf", "install", "-y")
    query_argv = ("rpm", "-q")
    update_argv = ("dnf", "check-update", "-y")
    # check-update exits 100 when updates are available.
    update_ok_codes = (0, 100)


class YumManager(_ShellPackageManager):
    manager_id = "yum"
    install_argv = ("yum", "install", "-y")
    query_argv = ("rpm", "-q")
    update_argv = ("yum", "check-update", "-y")
    update_ok_codes = (0, 100)


class PacmanManager(_ShellPackageManager):
    manager_id = "pacman"
    install_argv = ("pacman", "-S", "--needed", "--noconfirm")
    query_argv = ("pacman", "-Q")
    update_argv = ("pacman", "-Sy")


class BrewManager(_ShellPackageManager):
    manager_id = "brew"
    install_argv = ("brew", "install")
    query_argv = ("brew", "list", "--versions")
    update_argv = ("brew", "update")
    sudo = False


MANAGERS: Dict[str, Type[_ShellPackageManager]] = {
    cls.manager_id: cls for cls in (AptManager, DnfManager, YumManager, PacmanManager, BrewManager)
}


def get_package_manager(manager_id: str, *, runner: Runner = run_cmd) -> PackageManager:
    """Select the implementation for a detected package-manager id."""

    cls = MANAGERS.get(manager_id)
    if cls is None:
        raise PackageManagerError(f"unsupported package manager: {manager_id or 'none detected'}")
    return cls(runner=runner)
