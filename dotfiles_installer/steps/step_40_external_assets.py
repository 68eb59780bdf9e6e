from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import progress as ev
from ..lib import external

if TYPE_CHECKING:
    from ..context import AppContext
    from ..pipeline import InstallOptions, InstallResult

logger = logging.getLogger(__name__)


class ExternalAssetsStep:
    step_id = "40_external_assets"
    skip_option = "skip_external"

    def run(self, ctx: "AppContext", options: "InstallOptions", result: "InstallResult") -> None:
        if not ctx.manifest.external:
            return

        ev.emit(ctx.progress, external.PHASE, ev.INFO, f"Processing {len(ctx.manifest.external)} external dependencies")
        r = external.clone_all(
            ctx.manifest,
            ctx.detect(),
            dry_run=options.dry_run,
            git=ctx.git,
            home=ctx.home,
            progress=ctx.progress,
        )
        result.external_cloned.extend(r.cloned)
        result.external_updated.extend(r.updated)
        result.external_failed.extend(r.failed)
        result.external_skipped.extend(r.skipped)
