from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import progress as ev
from ..lib import deps

if TYPE_CHECKING:
    from ..context import AppContext
    from ..pipeline import InstallOptions, InstallResult

logger = logging.getLogger(__name__)


class DependenciesStep:
    step_id = "20_dependencies"
    skip_option = "skip_deps"

    def run(self, ctx: "AppContext", options: "InstallOptions", result: "InstallResult") -> None:
        manifest = ctx.manifest
        if not manifest.all_dependencies():
            return

        platform = ctx.detect()
        status = deps.check(manifest, platform, package_manager=ctx.package_manager)
        todo = status.missing() if options.only_missing else status.all()
        if not todo:
            ev.emit(ctx.progress, deps.PHASE, ev.SUCCESS, "All dependencies are installed")
            return

        if options.dry_run:
            for c in todo:
                ev.emit(ctx.progress, deps.PHASE, ev.INFO, f"Would install {c.item.name} ({c.package})", item=c.item.name)
            result.deps_missing_critical = [c.item for c in status.missing_critical()]
            return

        ev.emit(ctx.progress, deps.PHASE, ev.INFO, f"Installing {len(todo)} dependencies")
        outcome = deps.install(
            manifest,
            platform,
            only_missing=options.only_missing,
            package_manager=ctx.package_manager,
            progress=ctx.progress,
        )
        result.deps_installed.extend(outcome.installed)
        result.deps_failed.extend(outcome.failed)

        failed_names = {f.item.name for f in outcome.failed}
        result.deps_missing_critical = [c.item for c in status.missing_critical() if c.item.name in failed_names]
        if result.deps_missing_critical:
            ev.emit(
                ctx.progress,
                deps.PHASE,
                ev.WARNING,
                "Critical dependencies still missing: " + ", ".join(d.name for d in result.deps_missing_critical),
            )
