from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence, Tuple

from . import progress as ev
from .errors import DetectionError, InstallerError
from .lib.deps import DependencyFailure
from .lib.external import ExternalFailure, ExternalSkipped
from .lib.machine import RenderResult
from .lib.platform_detect import Platform
from .lib.stow import StowSkipped
from .manifest import DependencyItem, ExternalDep

if TYPE_CHECKING:
    from .context import AppContext
    from .errors import StowError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallOptions:
    auto: bool = False  # non-interactive, use prompt defaults
    minimal: bool = False  # core groups only
    skip_deps: bool = False
    skip_stow: bool = False
    skip_external: bool = False
    skip_machine: bool = False
    overwrite: bool = False  # regenerate existing machine configs
    force: bool = False  # stow --adopt
    dry_run: bool = False
    only_missing: bool = True


@dataclass(frozen=True)
class MachineFailure:
    id: str
    error: InstallerError


@dataclass(frozen=True)
class MachineSkipped:
    id: str
    reason: str


@dataclass
class InstallResult:
    platform: Optional[Platform] = None
    home: Optional[Path] = None
    dry_run: bool = False
    deps_installed: List[DependencyItem] = field(default_factory=list)
    deps_failed: List[DependencyFailure] = field(default_factory=list)
    deps_missing_critical: List[DependencyItem] = field(default_factory=list)
    configs_stowed: List[str] = field(default_factory=list)
    configs_failed: List["StowError"] = field(default_factory=list)
    configs_skipped: List[StowSkipped] = field(default_factory=list)
    external_cloned: List[ExternalDep] = field(default_factory=list)
    external_updated: List[ExternalDep] = field(default_factory=list)
    external_failed: List[ExternalFailure] = field(default_factory=list)
    external_skipped: List[ExternalSkipped] = field(default_factory=list)
    machine_configs: List[RenderResult] = field(default_factory=list)
    machine_failed: List[MachineFailure] = field(default_factory=list)
    machine_skipped: List[MachineSkipped] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)
    ran_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)

    def has_errors(self) -> bool:
        return bool(
            self.deps_failed
            or self.configs_failed
            or self.external_failed
            or self.machine_failed
            or self.errors
        )

    def failures(self) -> List[Tuple[str, str, str]]:
        """(kind, name, cause) for every failed item, in pipeline order."""

        out: List[Tuple[str, str, str]] = []
        out += [("dependency", f.item.name, str(f.error)) for f in self.deps_failed]
        out += [("config", e.group, str(e.underlying)) for e in self.configs_failed]
        out += [("external", f.dep.name, str(f.error)) for f in self.external_failed]
        out += [("machine", f.id, str(f.error)) for f in self.machine_failed]
        out += [("error", type(e).__name__, str(e)) for e in self.errors]
        return out

    def summary(self) -> str:
        lines: List[str] = []
        if self.platform is not None:
            line = f"Platform: {self.platform.os}"
            if self.platform.distro:
                line += f" ({self.platform.distro})"
            lines.append(line)

        if self.deps_installed or self.deps_failed:
            lines.append(f"Dependencies: {len(self.deps_installed)} installed, {len(self.deps_failed)} failed")
        if self.configs_stowed or self.configs_failed or self.configs_skipped:
            lines.append(
                f"Configs: {len(self.configs_stowed)} stowed, {len(self.configs_failed)} failed, "
                f"{len(self.configs_skipped)} skipped"
            )
        if self.external_cloned or self.external_updated or self.external_failed or self.external_skipped:
            lines.append(
                f"External: {len(self.external_cloned)} cloned, {len(self.external_updated)} updated, "
                f"{len(self.external_failed)} failed, {len(self.external_skipped)} skipped"
            )
        if self.machine_configs or self.machine_failed:
            lines.append(
                f"Machine configs: {len(self.machine_configs)} configured, {len(self.machine_failed)} failed"
            )
        for kind, name, cause in self.failures():
            lines.append(f"  ✗ {kind} {name}: {cause}")
        return "\n".join(lines) + "\n"


class Step(Protocol):
    """One phase of the install. Records its own per-item failures in result."""

    step_id: str
    skip_option: Optional[str]

    def run(self, ctx: "AppContext", options: InstallOptions, result: InstallResult) -> None:
        ...


def build_steps() -> List[Step]:
    from .steps import (
        DependenciesStep,
        DetectPlatformStep,
        ExternalAssetsStep,
        MachineConfigStep,
        StowConfigsStep,
    )

    return [
        DetectPlatformStep(),
        DependenciesStep(),
        StowConfigsStep(),
        ExternalAssetsStep(),
        MachineConfigStep(),
    ]


def run_pipeline(
    ctx: "AppContext",
    steps: Sequence[Step],
    options: InstallOptions,
    result: Optional[InstallResult] = None,
) -> InstallResult:
    """Run every phase once, in order.

    A phase failure is appended to result.errors and the next phase still
    runs. Platform detection is the exception: nothing can run without it.
    """

    result = result or InstallResult(home=ctx.home, dry_run=options.dry_run)

    for step in steps:
        if step.skip_option and getattr(options, step.skip_option, False):
            logger.info("Skipping step %s (%s)", step.step_id, step.skip_option)
            ev.emit(ctx.progress, step.step_id, ev.SKIPPED, f"Skipping {step.step_id}")
            result.skipped_steps.append(step.step_id)
            continue

        logger.info("Running step %s", step.step_id)
        try:
            step.run(ctx, options, result)
        except DetectionError:
            logger.exception("Platform detection failed")
            raise
        except (InstallerError, OSError) as e:
            logger.warning("Step %s failed: %s", step.step_id, e)
            ev.emit(ctx.progress, step.step_id, ev.FAILED, str(e))
            result.errors.append(e)
        result.ran_steps.append(step.step_id)

    return result


def install(ctx: "AppContext", options: InstallOptions = InstallOptions()) -> InstallResult:
    return run_pipeline(ctx, build_steps(), options)

