from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from . import progress as ev
from . import state_store
from .errors import CommandError, DetectionError, InstallerError, ManifestError, UpdateError
from .lib import external as external_assets
from .lib import stow
from .lib.env import expand_path
from .lib.git import is_git_repo
from .manifest import manifest_items_by_name

if TYPE_CHECKING:
    from .context import AppContext

logger = logging.getLogger(__name__)

PHASE = "update"


@dataclass(frozen=True)
class UpdateOptions:
    update_external: bool = False
    skip_restow: bool = False
    dry_run: bool = False
    force: bool = False


@dataclass
class UpdateResult:
    old_head: str = ""
    new_head: str = ""
    manifest_reloaded: bool = False
    restow: Optional[stow.StowResult] = None
    external: Optional[external_assets.ExternalResult] = None
    errors: List[InstallerError] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.old_head and self.new_head and self.old_head != self.new_head)

    def has_errors(self) -> bool:
        return bool(
            self.errors
            or (self.restow is not None and self.restow.failed)
            or (self.external is not None and self.external.failed)
        )


def _head(ctx: "AppContext") -> str:
    try:
        return ctx.git.head(ctx.dotfiles_root)
    except CommandError as e:
        logger.warning("Could not read HEAD of %s: %s", ctx.dotfiles_root, e)
        ev.emit(ctx.progress, PHASE, ev.WARNING, f"Could not read current HEAD: {e}")
        return ""


def _maybe_reload_manifest(ctx: "AppContext", result: UpdateResult) -> None:
    manifest_path = ctx.manifest.path
    if manifest_path is None:
        return
    try:
        rel = str(manifest_path.relative_to(ctx.dotfiles_root.resolve()))
    except ValueError:
        rel = manifest_path.name
    try:
        changed = ctx.git.changed_files(ctx.dotfiles_root, result.old_head, result.new_head, [rel])
    except CommandError as e:
        logger.warning("Could not diff %s..%s: %s", result.old_head, result.new_head, e)
        return
    if not changed:
        return

    ev.emit(ctx.progress, PHASE, ev.INFO, f"{rel} changed, reloading")
    try:
        ctx.reload_manifest()
    except ManifestError as e:
        # Keep going with the manifest we already have.
        ev.emit(ctx.progress, PHASE, ev.WARNING, f"Failed to reload manifest: {e}")
        result.errors.append(e)
        return
    result.manifest_reloaded = True


def update(ctx: "AppContext", options: UpdateOptions = UpdateOptions()) -> UpdateResult:
    """Pull the dotfiles repo, restow installed groups and optionally refresh external assets."""

    root = ctx.dotfiles_root
    if not is_git_repo(root):
        raise UpdateError(f"{root} is not a git repository")

    result = UpdateResult()
    result.old_head = _head(ctx)

    ev.emit(ctx.progress, PHASE, ev.START, f"Pulling latest changes in {root}")
    if not options.dry_run:
        try:
            ctx.git.pull(root)
        except CommandError as e:
            raise UpdateError(f"git pull failed: {e}") from e
    result.new_head = _head(ctx)

    if result.changed:
        _maybe_reload_manifest(ctx, result)
    else:
        ev.emit(ctx.progress, PHASE, ev.INFO, "Already up to date")

    state = ctx.load_state()
    manifest = ctx.manifest

    platform = None
    try:
        platform = ctx.detect()
    except DetectionError as e:
        ev.emit(ctx.progress, PHASE, ev.WARNING, f"Failed to detect platform: {e}")
        result.errors.append(e)

    if not options.skip_restow:
        names = state_store.installed_config_names(state)
        if names:
            items = manifest_items_by_name([*manifest.core, *manifest.optional, *manifest.archived], names)
        else:
            items = list(manifest.core)
        if items:
            ev.emit(ctx.progress, PHASE, ev.INFO, f"Restowing {len(items)} configs")
            result.restow = stow.restow_configs(
                root,
                items,
                stow.StowOptions(dry_run=options.dry_run, force=options.force),
                platform=platform,
                home=ctx.home,
                runner=ctx.runner,
                progress=ctx.progress,
            )

    if options.update_external and manifest.external and platform is not None:
        try:
            result.external = external_assets.clone_all(
                manifest,
                platform,
                dry_run=options.dry_run,
                update=True,
                git=ctx.git,
                home=ctx.home,
                progress=ctx.progress,
            )
        except InstallerError as e:
            ev.emit(ctx.progress, PHASE, ev.WARNING, f"Failed to update externals: {e}")
            result.errors.append(e)

    if state is not None and not options.dry_run:
        state["dotfiles_path"] = str(root)
        if result.external is not None:
            for dep in result.external.cloned:
                state_store.set_external(state, dep.id, str(expand_path(dep.destination, home=ctx.home)))
        ctx.save_state(state)

    return result
