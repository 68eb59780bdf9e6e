from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .. import progress as ev
from ..errors import CommandError, ConditionNotMetError, ExternalAssetError, InstallerError
from ..manifest import ExternalDep, Manifest
from .env import expand_path
from .git import GitClient, is_git_repo
from .platform_detect import Platform

logger = logging.getLogger(__name__)

PHASE = "external"

CONDITION_NOT_MET = "condition not met"
ALREADY_EXISTS = "already exists"


@dataclass(frozen=True)
class ExternalFailure:
    dep: ExternalDep
    error: InstallerError


@dataclass(frozen=True)
class ExternalSkipped:
    dep: ExternalDep
    reason: str


@dataclass
class ExternalResult:
    cloned: List[ExternalDep] = field(default_factory=list)
    updated: List[ExternalDep] = field(default_factory=list)
    failed: List[ExternalFailure] = field(default_factory=list)
    skipped: List[ExternalSkipped] = field(default_factory=list)


@dataclass(frozen=True)
class ExternalStatus:
    dep: ExternalDep
    status: str  # installed | missing | skipped | error
    reason: str = ""
    path: str = ""


def _matches(actual: str, expected: str) -> bool:
    return actual in [v.strip() for v in expected.split(",")]


def check_condition(condition: Mapping[str, str], platform: Platform) -> bool:
    """Evaluate a platform gate. Empty condition means always applicable.

    Values may list alternatives separated by commas ("linux,darwin").
    Unknown keys are ignored.
    """

    for key, value in (condition or {}).items():
        if key in ("platform", "os"):
            if not _matches(platform.os, value):
                return False
        elif key == "distro":
            if not _matches(platform.distro, value):
                return False
        elif key == "package_manager":
            if not _matches(platform.package_manager, value):
                return False
        elif key == "wsl":
            wanted = value.strip().lower()
            if wanted == "true" and not platform.is_wsl:
                return False
            if wanted == "false" and platform.is_wsl:
                return False
        elif key in ("arch", "architecture"):
            if not _matches(platform.architecture, value):
                return False
        else:
            logger.debug("Ignoring unknown condition key %r", key)
    return True


def _fetch(dep: ExternalDep, dest: Path, git: GitClient) -> None:
    method = dep.method or "clone"
    if method == "clone":
        git.clone(dep.url, dest)
    elif method == "copy":
        # Vendored copy: the user owns the files, no upstream history.
        with tempfile.TemporaryDirectory(prefix="dotfiles-installer-") as tmp:
            staged = Path(tmp) / "repo"
            git.clone(dep.url, staged)
            shutil.rmtree(staged / ".git", ignore_errors=True)
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(staged), str(dest))
    else:
        raise ExternalAssetError(f"unknown method: {method}")


def _process(
    dep: ExternalDep,
    platform: Platform,
    *,
    git: GitClient,
    home: Optional[Path],
    dry_run: bool,
    update: bool,
    result: ExternalResult,
    progress: Optional[ev.ProgressFn],
    current: int,
    total: int,
) -> None:
    def emit(outcome: str, message: str) -> None:
        ev.emit(progress, PHASE, outcome, message, item=dep.id, current=current, total=total)

    if not check_condition(dep.condition, platform):
        result.skipped.append(ExternalSkipped(dep=dep, reason=CONDITION_NOT_MET))
        emit(ev.SKIPPED, f"Skipping {dep.name} ({CONDITION_NOT_MET})")
        return

    dest = expand_path(dep.destination, home=home)

    if dest.exists():
        if update and is_git_repo(dest):
            emit(ev.START, f"Updating {dep.name}")
            if not dry_run:
                try:
                    git.pull(dest)
                except CommandError as e:
                    result.failed.append(ExternalFailure(dep=dep, error=ExternalAssetError(f"failed to update: {e}")))
                    emit(ev.FAILED, f"Failed to update {dep.name}: {e}")
                    return
            result.updated.append(dep)
            emit(ev.SUCCESS, f"Updated {dep.name}")
        else:
            result.skipped.append(ExternalSkipped(dep=dep, reason=ALREADY_EXISTS))
            emit(ev.SKIPPED, f"Skipping {dep.name} ({ALREADY_EXISTS})")
        return

    emit(ev.START, f"Cloning {dep.name}")
    if dry_run:
        result.cloned.append(dep)
        emit(ev.SUCCESS, f"Would clone {dep.name} to {dest}")
        return

    try:
        _fetch(dep, dest, git)
    except (ExternalAssetError, CommandError, OSError) as e:
        err = e if isinstance(e, ExternalAssetError) else ExternalAssetError(f"clone failed: {e}")
        logger.warning("External %s failed: %s", dep.id, err)
        result.failed.append(ExternalFailure(dep=dep, error=err))
        emit(ev.FAILED, f"Failed to clone {dep.name}: {err}")
        return

    result.cloned.append(dep)
    emit(ev.SUCCESS, f"Cloned {dep.name}")


def clone_all(
    manifest: Manifest,
    platform: Platform,
    *,
    dry_run: bool = False,
    update: bool = False,
    git: Optional[GitClient] = None,
    home: Optional[Path] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> ExternalResult:
    result = ExternalResult()
    if not manifest.external:
        return result

    git = git or GitClient()
    if not dry_run and not git.is_available():
        raise ExternalAssetError("git is required but not found in PATH")

    total = len(manifest.external)
    for i, dep in enumerate(manifest.external, start=1):
        _process(
            dep,
            platform,
            git=git,
            home=home,
            dry_run=dry_run,
            update=update,
            result=result,
            progress=progress,
            current=i,
            total=total,
        )
    return result


def _require(manifest: Manifest, ext_id: str) -> ExternalDep:
    dep = manifest.external_by_id(ext_id)
    if dep is None:
        raise ExternalAssetError(f"external dependency '{ext_id}' not found")
    return dep


def clone_single(
    manifest: Manifest,
    platform: Platform,
    ext_id: str,
    *,
    dry_run: bool = False,
    update: bool = False,
    git: Optional[GitClient] = None,
    home: Optional[Path] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> ExternalResult:
    """Clone or update one asset; raises instead of recording a skip or failure."""

    dep = _require(manifest, ext_id)
    if not check_condition(dep.condition, platform):
        raise ConditionNotMetError(f"{CONDITION_NOT_MET} for '{ext_id}'")

    dest = expand_path(dep.destination, home=home)
    if dest.exists() and not (update and is_git_repo(dest)):
        raise ExternalAssetError(f"destination already exists: {dest}")

    result = ExternalResult()
    _process(
        dep,
        platform,
        git=git or GitClient(),
        home=home,
        dry_run=dry_run,
        update=update,
        result=result,
        progress=progress,
        current=1,
        total=1,
    )
    if result.failed:
        raise result.failed[0].error
    return result


def remove(
    manifest: Manifest,
    ext_id: str,
    *,
    dry_run: bool = False,
    home: Optional[Path] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> Path:
    dep = _require(manifest, ext_id)
    dest = expand_path(dep.destination, home=home)
    if not dest.exists():
        raise ExternalAssetError(f"'{ext_id}' is not installed (path does not exist: {dest})")

    ev.emit(progress, PHASE, ev.START, f"Removing {dep.name}", item=dep.id)
    if dry_run:
        ev.emit(progress, PHASE, ev.SUCCESS, f"Would remove {dep.name} from {dest}", item=dep.id)
        return dest

    try:
        if dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        else:
            dest.unlink()
    except OSError as e:
        raise ExternalAssetError(f"failed to remove {dest}: {e}") from e

    logger.info("Removed external %s at %s", dep.id, dest)
    ev.emit(progress, PHASE, ev.SUCCESS, f"Removed {dep.name}", item=dep.id)
    return dest


def check_status(manifest: Manifest, platform: Platform, *, home: Optional[Path] = None) -> List[ExternalStatus]:
    statuses: List[ExternalStatus] = []
    for dep in manifest.external:
        if not check_condition(dep.condition, platform):
            statuses.append(ExternalStatus(dep=dep, status="skipped", reason=CONDITION_NOT_MET))
            continue
        try:
            dest = expand_path(dep.destination, home=home)
        except (OSError, ValueError) as e:
            statuses.append(ExternalStatus(dep=dep, status="error", reason=f"invalid path: {e}"))
            continue
        if dest.exists():
            reason = "" if is_git_repo(dest) else "not a git repo"
            statuses.append(ExternalStatus(dep=dep, status="installed", reason=reason, path=str(dest)))
        else:
            statuses.append(ExternalStatus(dep=dep, status="missing", path=str(dest)))
    return statuses
