from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .. import progress as ev
from ..errors import CommandError, StowError
from ..manifest import ConfigItem
from .command import Runner, command_exists, run_cmd
from .env import home_dir
from .platform_detect import Platform

logger = logging.getLogger(__name__)

PHASE = "stow"

SOURCE_MISSING = "directory not found"
PLATFORM_MISMATCH = "platform mismatch"


@dataclass(frozen=True)
class StowOptions:
    dry_run: bool = False
    force: bool = False


@dataclass(frozen=True)
class StowSkipped:
    name: str
    reason: str


@dataclass
class StowResult:
    success: List[str] = field(default_factory=list)
    failed: List[StowError] = field(default_factory=list)
    skipped: List[StowSkipped] = field(default_factory=list)


# mode -> (flags, verb)
_MODES = {
    "stow": ((), "Stowing"),
    "unstow": (("-D",), "Unstowing"),
    "restow": (("-R",), "Restowing"),
}


def stow_argv(
    mode: str,
    dotfiles_root: Path,
    package: str,
    options: StowOptions,
    *,
    home: Optional[Path] = None,
) -> List[str]:
    flags, _ = _MODES[mode]
    argv = ["stow", "-v", *flags]
    if options.dry_run:
        argv.append("-n")
    # Adopting makes no sense when deleting links.
    if options.force and mode != "unstow":
        argv.append("--adopt")
    argv += ["-t", str(home or home_dir()), "-d", str(dotfiles_root), package]
    return argv


def _run(
    mode: str,
    dotfiles_root: Path,
    package: str,
    options: StowOptions,
    *,
    group: Optional[str] = None,
    home: Optional[Path] = None,
    runner: Runner = run_cmd,
) -> None:
    argv = stow_argv(mode, dotfiles_root, package, options, home=home)
    try:
        runner(argv)
    except CommandError as e:
        raise StowError(group or package, e) from e


def stow(dotfiles_root: Path, package: str, options: StowOptions = StowOptions(), **kw) -> None:
    _run("stow", dotfiles_root, package, options, **kw)


def unstow(dotfiles_root: Path, package: str, options: StowOptions = StowOptions(), **kw) -> None:
    _run("unstow", dotfiles_root, package, options, **kw)


def restow(dotfiles_root: Path, package: str, options: StowOptions = StowOptions(), **kw) -> None:
    _run("restow", dotfiles_root, package, options, **kw)


def _batch(
    mode: str,
    dotfiles_root: Path,
    items: Sequence[ConfigItem],
    options: StowOptions,
    *,
    platform: Optional[Platform],
    home: Optional[Path],
    runner: Runner,
    progress: Optional[ev.ProgressFn],
) -> StowResult:
    """Apply one mode to many groups.

    Missing source directories are skipped without calling stow. A failing
    group is recorded and the next one is still attempted.
    """

    _, verb = _MODES[mode]
    result = StowResult()
    total = len(items)
    for i, item in enumerate(items, start=1):
        def emit(outcome: str, message: str) -> None:
            ev.emit(progress, PHASE, outcome, message, item=item.name, current=i, total=total)

        if platform is not None and not item.supports(platform.os):
            result.skipped.append(StowSkipped(item.name, PLATFORM_MISMATCH))
            emit(ev.SKIPPED, f"Skipped {item.name} ({PLATFORM_MISMATCH})")
            continue

        package = item.path or item.name
        if not (dotfiles_root / package).is_dir():
            result.skipped.append(StowSkipped(item.name, SOURCE_MISSING))
            logger.info("Skipping %s: %s does not exist", item.name, dotfiles_root / package)
            emit(ev.SKIPPED, f"Skipped {item.name} ({SOURCE_MISSING})")
            continue

        emit(ev.START, f"{verb} {item.name}")
        try:
            _run(mode, dotfiles_root, package, options, group=item.name, home=home, runner=runner)
        except StowError as e:
            logger.warning("%s %s failed: %s", verb, item.name, e.underlying)
            result.failed.append(e)
            emit(ev.FAILED, str(e))
            continue
        result.success.append(item.name)
        emit(ev.SUCCESS, f"{verb} {item.name} done")
    return result


def stow_configs(
    dotfiles_root: Path,
    items: Sequence[ConfigItem],
    options: StowOptions = StowOptions(),
    *,
    platform: Optional[Platform] = None,
    home: Optional[Path] = None,
    runner: Runner = run_cmd,
    progress: Optional[ev.ProgressFn] = None,
) -> StowResult:
    return _batch("stow", dotfiles_root, items, options, platform=platform, home=home, runner=runner, progress=progress)


def unstow_configs(
    dotfiles_root: Path,
    items: Sequence[ConfigItem],
    options: StowOptions = StowOptions(),
    *,
    platform: Optional[Platform] = None,
    home: Optional[Path] = None,
    runner: Runner = run_cmd,
    progress: Optional[ev.ProgressFn] = None,
) -> StowResult:
    return _batch("unstow", dotfiles_root, items, options, platform=platform, home=home, runner=runner, progress=progress)


def restow_configs(
    dotfiles_root: Path,
    items: Sequence[ConfigItem],
    options: StowOptions = StowOptions(),
    *,
    platform: Optional[Platform] = None,
    home: Optional[Path] = None,
    runner: Runner = run_cmd,
    progress: Optional[ev.ProgressFn] = None,
) -> StowResult:
    return _batch("restow", dotfiles_root, items, options, platform=platform, home=home, runner=runner, progress=progress)


def is_stow_installed() -> bool:
    return command_exists("stow")


def validate_stow(runner: Runner = run_cmd) -> str:
    """Return the stow version line, raising StowError if stow is unusable."""

    if not is_stow_installed():
        raise StowError("stow", "GNU stow is not installed")
    try:
        r = runner(["stow", "--version"])
    except CommandError as e:
        raise StowError("stow", e) from e
    first = (r.stdout.strip().splitlines() or [""])[0]
    if "stow" not in first.lower():
        raise StowError("stow", f"unexpected stow version output: {first}")
    return first
