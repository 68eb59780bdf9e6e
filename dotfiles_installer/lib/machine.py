"""Machine-specific configuration.

Each MachinePrompt declares an ordered list of fields. Values are collected
(interactively or from defaults), substituted into a small ``{{ name }}``
template, and written to a destination under the home directory. Existing
destinations are never clobbered unless overwrite is requested, since users
edit these files by hand.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform as _platform
import re
import socket
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from .. import progress as ev
from ..errors import DestinationExistsError, TemplateError
from ..manifest import MachinePrompt, Manifest, PromptField
from .env import expand_path, home_dir

logger = logging.getLogger(__name__)

PHASE = "machine"

DEFAULT_MAX_ATTEMPTS = 3

_TRUE_WORDS = {"y", "yes", "true", "1"}

_VAR = re.compile(r"\{\{\s*\.?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


@dataclass(frozen=True)
class PromptResult:
    id: str
    values: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderResult:
    id: str
    destination: str
    content: str
    written: bool = True


@dataclass(frozen=True)
class MachineConfigStatus:
    id: str
    description: str
    destination: str
    status: str  # configured | missing


@dataclass
class PromptOptions:
    skip_prompts: bool = False
    stdin: Optional[TextIO] = None
    stdout: Optional[TextIO] = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    progress: Optional[ev.ProgressFn] = None


def get_machine_config(manifest: Manifest, mc_id: str) -> MachinePrompt:
    mc = manifest.machine_config_by_id(mc_id)
    if mc is None:
        raise TemplateError(f"machine config '{mc_id}' not found")
    return mc


def list_machine_configs(manifest: Manifest) -> List[tuple[str, str]]:
    return [(mc.id, mc.description) for mc in manifest.machine_config]


def normalize_confirm(raw: str) -> str:
    return "true" if raw.strip().lower() in _TRUE_WORDS else "false"


def _prompt_text(pf: PromptField) -> str:
    text = pf.label
    if pf.type == "confirm":
        text += " [y/N]"
    elif pf.default:
        text += f" [{pf.default}]"
    if pf.required:
        text += " (required)"
    return text + ": "


def _read_line(pf: PromptField, prompt: str, stdin: TextIO, stdout: TextIO) -> Optional[str]:
    """Return one line without the newline, or None at end of input."""

    if pf.type == "password" and stdin is sys.stdin and stdin.isatty():
        try:
            return getpass.getpass(prompt, stream=stdout)
        except EOFError:
            return None

    stdout.write(prompt)
    stdout.flush()
    line = stdin.readline()
    if line == "":
        return None
    return line.rstrip("\r\n")


def _resolve_select(pf: PromptField, raw: str) -> Optional[str]:
    if raw in pf.options:
        return raw
    if raw.isdigit():
        idx = int(raw)
        if 1 <= idx <= len(pf.options):
            return pf.options[idx - 1]
    return None


def collect_field(pf: PromptField, opts: PromptOptions) -> str:
    """Resolve a single field.

    Re-prompts at most ``opts.max_attempts`` times for a required field left
    empty or an invalid select choice, then gives up with TemplateError.
    """

    if opts.skip_prompts:
        if pf.required and not pf.default:
            raise TemplateError(f"required field '{pf.id}' has no default value")
        return pf.default

    stdin = opts.stdin or sys.stdin
    stdout = opts.stdout or sys.stdout

    if pf.type == "select":
        for i, option in enumerate(pf.options, start=1):
            stdout.write(f"  {i}) {option}\n")

    prompt = _prompt_text(pf)
    for _ in range(max(1, opts.max_attempts)):
        raw = _read_line(pf, prompt, stdin, stdout)
        if raw is None:
            if pf.default:
                return pf.default
            if pf.required:
                raise TemplateError(f"required field '{pf.id}' not provided")
            return "false" if pf.type == "confirm" else ""

        value = raw.strip()
        if pf.type == "confirm":
            return normalize_confirm(value)

        if not value and pf.default:
            value = pf.default

        if pf.type == "select" and value:
            chosen = _resolve_select(pf, value)
            if chosen is None:
                stdout.write(f"Please choose one of: {', '.join(pf.options)}\n")
                continue
            return chosen

        if pf.required and not value:
            stdout.write("This field is required. Please enter a value.\n")
            continue

        return value

    raise TemplateError(f"no valid value for '{pf.id}' after {opts.max_attempts} attempts")


def collect_prompts(mc: MachinePrompt, opts: PromptOptions) -> PromptResult:
    ev.emit(opts.progress, PHASE, ev.INFO, f"Configuring {mc.description}", item=mc.id)
    values: Dict[str, str] = {}
    for pf in mc.prompts:
        values[pf.id] = collect_field(pf, opts)
    return PromptResult(id=mc.id, values=values)


def collect_single(manifest: Manifest, mc_id: str, opts: Optional[PromptOptions] = None) -> PromptResult:
    return collect_prompts(get_machine_config(manifest, mc_id), opts or PromptOptions())


def collect_all(manifest: Manifest, opts: Optional[PromptOptions] = None) -> List[PromptResult]:
    opts = opts or PromptOptions()
    results: List[PromptResult] = []
    for mc in manifest.machine_config:
        try:
            results.append(collect_prompts(mc, opts))
        except TemplateError as e:
            raise TemplateError(f"failed to collect prompts for {mc.id}: {e}") from e
    return results


def render_template(template: str, values: Dict[str, str]) -> str:
    missing: List[str] = []

    def sub(m: re.Match) -> str:
        name = m.group(1)
        if name not in values:
            missing.append(name)
            return m.group(0)
        return values[name]

    out = _VAR.sub(sub, template)
    if missing:
        raise TemplateError(f"undefined template variable(s): {', '.join(sorted(set(missing)))}")
    return out


def preview(mc: MachinePrompt, values: Dict[str, str]) -> str:
    return render_template(mc.template, values)


def render_and_write(
    mc: MachinePrompt,
    values: Dict[str, str],
    *,
    overwrite: bool = False,
    dry_run: bool = False,
    home: Optional[Path] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> RenderResult:
    content = render_template(mc.template, values)
    dest = expand_path(mc.destination, home=home)

    if dest.exists() and not overwrite:
        raise DestinationExistsError(str(dest))

    if dry_run:
        ev.emit(progress, PHASE, ev.SUCCESS, f"Would write {dest}", item=mc.id)
        return RenderResult(id=mc.id, destination=str(dest), content=content, written=False)

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(content, encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"failed to write {dest}: {e}") from e

    logger.info("Wrote machine config %s to %s", mc.id, dest)
    ev.emit(progress, PHASE, ev.SUCCESS, f"Wrote {dest}", item=mc.id)
    return RenderResult(id=mc.id, destination=str(dest), content=content)


def remove(
    mc: MachinePrompt,
    *,
    dry_run: bool = False,
    home: Optional[Path] = None,
    progress: Optional[ev.ProgressFn] = None,
) -> Path:
    dest = expand_path(mc.destination, home=home)
    if not dest.exists():
        raise TemplateError(f"'{mc.id}' is not configured (path does not exist: {dest})")
    if dry_run:
        ev.emit(progress, PHASE, ev.SUCCESS, f"Would remove {dest}", item=mc.id)
        return dest
    try:
        dest.unlink()
    except OSError as e:
        raise TemplateError(f"failed to remove {dest}: {e}") from e
    ev.emit(progress, PHASE, ev.SUCCESS, f"Removed {dest}", item=mc.id)
    return dest


def check_status(manifest: Manifest, *, home: Optional[Path] = None) -> List[MachineConfigStatus]:
    out: List[MachineConfigStatus] = []
    for mc in manifest.machine_config:
        dest = expand_path(mc.destination, home=home)
        out.append(
            MachineConfigStatus(
                id=mc.id,
                description=mc.description,
                destination=str(dest),
                status="configured" if dest.exists() else "missing",
            )
        )
    return out


def system_info() -> Dict[str, str]:
    """Facts useful when filling in machine prompts by hand."""

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = ""
    return {
        "hostname": socket.gethostname(),
        "user": user,
        "home": str(home_dir()),
        "shell": os.environ.get("SHELL", ""),
        "os": _platform.system().lower(),
        "arch": _platform.machine(),
    }
