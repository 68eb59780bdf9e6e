from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import progress as ev
from ..errors import TemplateError
from ..lib import machine
from ..pipeline import MachineFailure, MachineSkipped

if TYPE_CHECKING:
    from ..context import AppContext
    from ..pipeline import InstallOptions, InstallResult

logger = logging.getLogger(__name__)

ALREADY_CONFIGURED = "already configured"


class MachineConfigStep:
    step_id = "50_machine_config"
    skip_option = "skip_machine"

    def run(self, ctx: "AppContext", options: "InstallOptions", result: "InstallResult") -> None:
        manifest = ctx.manifest
        if not manifest.machine_config:
            return

        statuses = machine.check_status(manifest, home=ctx.home)
        todo = []
        for st in statuses:
            if st.status == "configured" and not options.overwrite:
                result.machine_skipped.append(MachineSkipped(st.id, ALREADY_CONFIGURED))
                ev.emit(ctx.progress, machine.PHASE, ev.SKIPPED, f"Skipped {st.id} ({ALREADY_CONFIGURED})", item=st.id)
                continue
            todo.append(machine.get_machine_config(manifest, st.id))

        if not todo:
            ev.emit(ctx.progress, machine.PHASE, ev.SUCCESS, "All machine configs are already set up")
            return

        prompt_opts = machine.PromptOptions(
            skip_prompts=options.auto,
            stdin=ctx.stdin,
            stdout=ctx.stdout,
            progress=ctx.progress,
        )
        for mc in todo:
            try:
                collected = machine.collect_prompts(mc, prompt_opts)
                rendered = machine.render_and_write(
                    mc,
                    collected.values,
                    overwrite=options.overwrite,
                    dry_run=options.dry_run,
                    home=ctx.home,
                    progress=ctx.progress,
                )
            except TemplateError as e:
                logger.warning("Machine config %s failed: %s", mc.id, e)
                result.machine_failed.append(MachineFailure(mc.id, e))
                ev.emit(ctx.progress, machine.PHASE, ev.FAILED, f"{mc.id}: {e}", item=mc.id)
                continue
            result.machine_configs.append(rendered)
