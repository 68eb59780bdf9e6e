from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .. import progress as ev
from ..errors import DependencyError, InstallerError
from ..manifest import DependencyItem, Manifest
from .pkg import PackageManager, get_package_manager
from .platform_detect import Platform

logger = logging.getLogger(__name__)

PHASE = "dependencies"


@dataclass(frozen=True)
class DependencyCheck:
    item: DependencyItem
    tier: str
    package: str
    installed: bool


@dataclass
class DependencyCheckResult:
    critical: List[DependencyCheck] = field(default_factory=list)
    core: List[DependencyCheck] = field(default_factory=list)
    optional: List[DependencyCheck] = field(default_factory=list)

    def all(self) -> List[DependencyCheck]:
        return [*self.critical, *self.core, *self.optional]

    def missing(self) -> List[DependencyCheck]:
        return [c for c in self.all() if not c.installed]

    def missing_critical(self) -> List[DependencyCheck]:
        return [c for c in self.critical if not c.installed]

    def all_installed(self) -> bool:
        return not self.missing()


@dataclass(frozen=True)
class DependencyFailure:
    item: DependencyItem
    error: InstallerError


@dataclass
class InstallOutcome:
    installed: List[DependencyItem] = field(default_factory=list)
    failed: List[DependencyFailure] = field(default_factory=list)
    skipped: List[DependencyItem] = field(default_factory=list)


def _manager_for(platform: Platform, package_manager: Optional[PackageManager]) -> PackageManager:
    return package_manager or get_package_manager(platform.package_manager)


def check(
    manifest: Manifest,
    platform: Platform,
    *,
    package_manager: Optional[PackageManager] = None,
) -> DependencyCheckResult:
    """Query installed status for every declared dependency, in declaration order."""

    pm = _manager_for(platform, package_manager)
    result = DependencyCheckResult()
    for tier, items in manifest.dependency_tiers():
        bucket = getattr(result, tier)
        for item in items:
            package = item.package_name(pm.name())
            installed = pm.is_installed(package)
            logger.debug("dep %s (%s, %s): installed=%s", item.name, tier, package, installed)
            bucket.append(DependencyCheck(item=item, tier=tier, package=package, installed=installed))
    if result.missing_critical():
        logger.warning(
            "Missing critical dependencies: %s",
            ", ".join(c.item.name for c in result.missing_critical()),
        )
    return result


def install(
    manifest: Manifest,
    platform: Platform,
    *,
    only_missing: bool = True,
    package_manager: Optional[PackageManager] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> InstallOutcome:
    """Install declared dependencies one at a time.

    A failed item is recorded and the next one is attempted; nothing is retried.
    """

    pm = _manager_for(platform, package_manager)
    status = check(manifest, platform, package_manager=pm)
    todo = status.missing() if only_missing else status.all()

    outcome = InstallOutcome()
    outcome.skipped = [c.item for c in status.all() if c not in todo]
    if not todo:
        return outcome

    try:
        pm.update()
    except DependencyError as e:
        logger.warning("Package index refresh failed, installing anyway: %s", e)
        ev.emit(progress, PHASE, ev.WARNING, f"Package index refresh failed: {e}")

    total = len(todo)
    for i, c in enumerate(todo, start=1):
        ev.emit(progress, PHASE, ev.START, f"Installing {c.item.name}", item=c.item.name, current=i, total=total)
        try:
            pm.install(c.package)
        except DependencyError as e:
            logger.warning("Failed to install %s: %s", c.item.name, e)
            outcome.failed.append(DependencyFailure(item=c.item, error=e))
            ev.emit(progress, PHASE, ev.FAILED, str(e), item=c.item.name, current=i, total=total)
            continue
        outcome.installed.append(c.item)
        ev.emit(progress, PHASE, ev.SUCCESS, f"Installed {c.item.name}", item=c.item.name, current=i, total=total)

    return outcome
