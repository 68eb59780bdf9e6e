from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import progress as ev
from ..lib import stow
from ..state_store import installed_config_names

if TYPE_CHECKING:
    from ..context import AppContext
    from ..pipeline import InstallOptions, InstallResult

logger = logging.getLogger(__name__)

ALREADY_STOWED = "already installed"


class StowConfigsStep:
    step_id = "30_stow_configs"
    skip_option = "skip_stow"

    def run(self, ctx: "AppContext", options: "InstallOptions", result: "InstallResult") -> None:
        manifest = ctx.manifest
        items = list(manifest.core) if options.minimal else manifest.all_configs()
        if not items:
            ev.emit(ctx.progress, stow.PHASE, ev.INFO, "No configs to stow")
            return

        if options.only_missing:
            installed = set(installed_config_names(ctx.load_state()))
            todo = []
            for item in items:
                if item.name in installed:
                    result.configs_skipped.append(stow.StowSkipped(item.name, ALREADY_STOWED))
                    ev.emit(ctx.progress, stow.PHASE, ev.SKIPPED, f"Skipped {item.name} ({ALREADY_STOWED})", item=item.name)
                else:
                    todo.append(item)
            items = todo

        if not items:
            return

        ev.emit(ctx.progress, stow.PHASE, ev.INFO, f"Stowing {len(items)} configs")
        r = stow.stow_configs(
            ctx.dotfiles_root,
            items,
            stow.StowOptions(dry_run=options.dry_run, force=options.force),
            platform=ctx.detect(),
            home=ctx.home,
            runner=ctx.runner,
            progress=ctx.progress,
        )
        result.configs_stowed.extend(r.success)
        result.configs_failed.extend(r.failed)
        result.configs_skipped.extend(r.skipped)
