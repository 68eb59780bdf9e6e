from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from . import progress as ev
from . import state_store
from .errors import ExternalAssetError, InstallerError, TemplateError
from .lib import external, machine, stow
from .lib.env import expand_path
from .manifest import manifest_items_by_name

if TYPE_CHECKING:
    from .context import AppContext

logger = logging.getLogger(__name__)

PHASE = "uninstall"


@dataclass(frozen=True)
class UninstallOptions:
    remove_external: bool = False
    remove_machine: bool = False
    dry_run: bool = False


@dataclass
class UninstallResult:
    unstow: Optional[stow.StowResult] = None
    external_removed: List[str] = field(default_factory=list)
    external_failed: List[external.ExternalFailure] = field(default_factory=list)
    machine_removed: List[str] = field(default_factory=list)
    machine_failed: List[tuple[str, InstallerError]] = field(default_factory=list)
    state_deleted: bool = False
    errors: List[InstallerError] = field(default_factory=list)

    def has_errors(self) -> bool:
        return bool(
            self.errors
            or self.external_failed
            or self.machine_failed
            or (self.unstow is not None and self.unstow.failed)
        )


def _guards_dotfiles(path: Path, root: Path) -> bool:
    """True if removing ``path`` would remove the dotfiles repository itself."""

    p = path.resolve()
    r = root.resolve()
    return p == r or p in r.parents


def uninstall(ctx: "AppContext", options: UninstallOptions = UninstallOptions()) -> UninstallResult:
    """Reverse an install. The dotfiles source repository is never deleted."""

    manifest = ctx.manifest
    state = ctx.load_state()
    result = UninstallResult()

    names = state_store.installed_config_names(state)
    if names:
        items = manifest_items_by_name([*manifest.core, *manifest.optional, *manifest.archived], names)
    else:
        items = manifest.all_configs()

    if items:
        ev.emit(ctx.progress, PHASE, ev.INFO, f"Unstowing {len(items)} configs")
        result.unstow = stow.unstow_configs(
            ctx.dotfiles_root,
            items,
            stow.StowOptions(dry_run=options.dry_run),
            home=ctx.home,
            runner=ctx.runner,
            progress=ctx.progress,
        )

    if options.remove_external:
        tracked = set((state or {}).get("external") or {})
        for dep in manifest.external:
            if tracked and dep.id not in tracked:
                continue
            dest = expand_path(dep.destination, home=ctx.home)
            if not dest.exists():
                continue
            if _guards_dotfiles(dest, ctx.dotfiles_root):
                err = ExternalAssetError(f"refusing to remove {dest}: it contains the dotfiles repository")
                result.external_failed.append(external.ExternalFailure(dep=dep, error=err))
                continue
            try:
                external.remove(manifest, dep.id, dry_run=options.dry_run, home=ctx.home, progress=ctx.progress)
            except ExternalAssetError as e:
                result.external_failed.append(external.ExternalFailure(dep=dep, error=e))
                continue
            result.external_removed.append(dep.id)

    if options.remove_machine:
        for mc in manifest.machine_config:
            dest = expand_path(mc.destination, home=ctx.home)
            if not dest.exists():
                continue
            if _guards_dotfiles(dest, ctx.dotfiles_root):
                result.machine_failed.append((mc.id, TemplateError(f"refusing to remove {dest}")))
                continue
            try:
                machine.remove(mc, dry_run=options.dry_run, home=ctx.home, progress=ctx.progress)
            except TemplateError as e:
                result.machine_failed.append((mc.id, e))
                continue
            result.machine_removed.append(mc.id)

    if not options.dry_run:
        try:
            result.state_deleted = state_store.delete_state(ctx.state_path)
        except InstallerError as e:
            result.errors.append(e)
        else:
            ev.emit(ctx.progress, PHASE, ev.SUCCESS, "Removed state file")

    return result
