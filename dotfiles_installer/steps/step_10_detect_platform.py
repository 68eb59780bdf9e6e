from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import progress as ev

if TYPE_CHECKING:
    from ..context import AppContext
    from ..pipeline import InstallOptions, InstallResult

logger = logging.getLogger(__name__)


class DetectPlatformStep:
    step_id = "10_detect_platform"
    skip_option = None

    def run(self, ctx: "AppContext", options: "InstallOptions", result: "InstallResult") -> None:
        ev.emit(ctx.progress, "platform", ev.START, "Detecting platform")
        p = ctx.detect()
        result.platform = p
        ev.emit(ctx.progress, "platform", ev.SUCCESS, f"Platform: {p.os} ({p.package_manager or 'no package manager'})")
