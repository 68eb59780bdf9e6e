from __future__ import annotations

import logging
import os
import platform
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from ..errors import DetectionError

logger = logging.getLogger(__name__)

# First available wins.
PACKAGE_MANAGER_PRIORITY: Dict[str, Sequence[str]] = {
    "linux": ("dnf", "yum", "apt", "pacman", "brew"),
    "darwin": ("brew",),
}

# apt is probed through apt-get, which is present on every Debian derivative.
_PACKAGE_MANAGER_BINARY = {
    "apt": "apt-get",
}


@dataclass(frozen=True)
class Platform:
    os: str
    distro: str = ""
    distro_version: str = ""
    package_manager: str = ""
    architecture: str = ""
    is_wsl: bool = False

    def describe(self) -> str:
        lines = [f"OS:              {self.os}"]
        if self.distro:
            distro = self.distro + (f" {self.distro_version}" if self.distro_version else "")
            lines.append(f"Distribution:    {distro}")
        lines.append(f"Package manager: {self.package_manager or 'none detected'}")
        lines.append(f"Architecture:    {self.architecture}")
        if self.is_wsl:
            lines.append("WSL:             yes")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "x86_64": "amd64",
        "amd64": "amd64",
        "aarch64": "arm64",
        "arm64": "arm64",
        "armv7l": "arm",
        "armv6l": "arm",
        "i386": "386",
        "i686": "386",
    }.get(m, m)


def _read_text(path: Path) -> Optional[str]:
    try:
        txt = path.read_text(encoding="utf-8", errors="ignore").strip()
        return txt or None
    except OSError:
        return None


def parse_os_release(text: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        out[key.strip()] = value.strip().strip('"').strip("'")
    return out


def _detect_wsl(proc_version: Optional[str], env: Mapping[str, str]) -> bool:
    if env.get("WSL_DISTRO_NAME") or env.get("WSL_INTEROP"):
        return True
    return bool(proc_version and "microsoft" in proc_version.lower())


def _detect_package_manager(os_name: str, which: Callable[[str], Optional[str]]) -> str:
    for candidate in PACKAGE_MANAGER_PRIORITY.get(os_name, ()):
        if which(_PACKAGE_MANAGER_BINARY.get(candidate, candidate)):
            return candidate
    return ""


def detect_platform(
    *,
    system: Optional[str] = None,
    machine: Optional[str] = None,
    os_release_path: Path = Path("/etc/os-release"),
    proc_version_path: Path = Path("/proc/version"),
    env: Optional[Mapping[str, str]] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Platform:
    """Probe the running machine. Read-only.

    Every probe can be overridden so tests never depend on the host.
    """

    env = os.environ if env is None else env
    os_name = (system if system is not None else platform.system()).strip().lower()
    if not os_name:
        raise DetectionError("could not determine operating system")

    distro = ""
    version = ""
    is_wsl = False
    if os_name == "linux":
        release = _read_text(os_release_path)
        if release:
            info = parse_os_release(release)
            distro = info.get("ID", "")
            version = info.get("VERSION_ID", "")
        else:
            logger.warning("No os-release at %s; distribution unknown", os_release_path)
        is_wsl = _detect_wsl(_read_text(proc_version_path), env)
    elif os_name == "darwin":
        distro = "macos"
        version = platform.mac_ver()[0] if system is None else ""

    arch = normalize_arch(machine if machine is not None else platform.machine())
    if not arch:
        raise DetectionError("could not determine CPU architecture")

    p = Platform(
        os=os_name,
        distro=distro,
        distro_version=version,
        package_manager=_detect_package_manager(os_name, which),
        architecture=arch,
        is_wsl=is_wsl,
    )
    logger.info(
        "Platform: os=%s distro=%s pm=%s arch=%s wsl=%s",
        p.os,
        p.distro,
        p.package_manager,
        p.architecture,
        p.is_wsl,
    )
    return p
