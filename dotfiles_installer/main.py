from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from . import __version__
from . import progress as ev
from . import state_store
from .context import AppContext
from .errors import InstallerError, StowError
from .lib import deps, external, machine, stow
from .lib.env import PATHS, expand_path
from .lib.platform_detect import detect_platform
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .manifest import DEPENDENCY_TIERS, load_from_discovery
from .pipeline import InstallOptions, install
from .uninstall import UninstallOptions, uninstall
from .update import UpdateOptions, update

logger = logging.getLogger(__name__)

_MARKS = {
    ev.SUCCESS: "✓",
    ev.FAILED: "✗",
    ev.SKIPPED: "⊘",
    ev.WARNING: "⚠",
    ev.START: "→",
    ev.INFO: " ",
}


def render_event(event: ev.ProgressEvent) -> None:
    """Console presentation of progress events."""

    counter = f"[{event.current}/{event.total}] " if event.total else ""
    stream = sys.stderr if event.outcome in (ev.FAILED, ev.WARNING) else sys.stdout
    print(f"  {_MARKS.get(event.outcome, ' ')} {counter}{event.message}", file=stream)


def _section(title: str) -> None:
    print(f"\n── {title} ──")


def _load_or_new_state(app: AppContext) -> Dict[str, Any]:
    return app.load_state() or state_store.new_state(app.dotfiles_root)


# ---------------------------------------------------------------- install


def cmd_install(app: AppContext, args: argparse.Namespace) -> int:
    options = InstallOptions(
        auto=args.auto,
        minimal=args.minimal,
        skip_deps=args.skip_deps,
        skip_stow=args.skip_stow,
        skip_external=args.skip_external,
        skip_machine=args.skip_machine,
        overwrite=args.overwrite,
        force=args.force,
        dry_run=args.dry_run,
    )

    _section("Installation")
    print(f"Dotfiles: {app.dotfiles_root}")
    if app.manifest.name:
        print(f"Config:   {app.manifest.name}")

    result = install(app, options)

    _section("Summary")
    print(result.summary(), end="")
    if result.has_errors():
        print("Installation completed with errors", file=sys.stderr)
        return 1

    if not options.dry_run:
        state = state_store.record_install(app.load_state(), app.manifest, app.dotfiles_root, result)
        app.save_state(state)

    print("Installation complete!")
    if app.manifest.post_install:
        _section("Next Steps")
        print(app.manifest.post_install)
    return 0


def cmd_update(app: AppContext, args: argparse.Namespace) -> int:
    result = update(
        app,
        UpdateOptions(
            update_external=args.external,
            skip_restow=args.skip_restow,
            dry_run=args.dry_run,
            force=args.force,
        ),
    )
    if result.changed:
        print(f"Updated {result.old_head[:8]}..{result.new_head[:8]}")
    if result.restow is not None:
        print(f"Restowed {len(result.restow.success)} configs, {len(result.restow.failed)} failed")
        for e in result.restow.failed:
            print(f"  ✗ {e.group}: {e.underlying}", file=sys.stderr)
    if result.external is not None:
        print(f"External: {len(result.external.updated)} updated, {len(result.external.failed)} failed")
    for e in result.errors:
        print(f"  ⚠ {e}", file=sys.stderr)
    return 1 if result.has_errors() else 0


def cmd_uninstall(app: AppContext, args: argparse.Namespace) -> int:
    result = uninstall(
        app,
        UninstallOptions(
            remove_external=args.remove_external,
            remove_machine=args.remove_machine,
            dry_run=args.dry_run,
        ),
    )
    if result.unstow is not None:
        print(f"Unstowed {len(result.unstow.success)} configs")
        for e in result.unstow.failed:
            print(f"  ✗ {e.group}: {e.underlying}", file=sys.stderr)
    for f in result.external_failed:
        print(f"  ✗ external {f.dep.name}: {f.error}", file=sys.stderr)
    for mc_id, err in result.machine_failed:
        print(f"  ✗ machine {mc_id}: {err}", file=sys.stderr)
    for e in result.errors:
        print(f"  ✗ {e}", file=sys.stderr)
    print(f"Dotfiles repository left in place: {app.dotfiles_root}")
    return 1 if result.has_errors() else 0


def cmd_list(app: AppContext, args: argparse.Namespace) -> int:
    state = app.load_state()
    installed = set(state_store.installed_config_names(state))
    p = app.detect()

    def show_configs(title: str, items) -> None:
        if not items:
            return
        print(title)
        for c in items:
            if not c.supports(p.os):
                if args.all:
                    print(f"  o {c.name} (not available on {p.os})")
                continue
            mark = "+" if c.name in installed else "x"
            desc = f" - {c.description}" if c.description else ""
            print(f"  {mark} {c.name}{desc}")
        print()

    show_configs("Core Configs", app.manifest.core)
    show_configs("Optional Configs", app.manifest.optional)
    if args.all:
        show_configs("Archived Configs", app.manifest.archived)

    statuses = external.check_status(app.manifest, p, home=app.home)
    if statuses:
        print("External Dependencies")
        for s in statuses:
            if s.status == "skipped":
                if args.all:
                    print(f"  o {s.dep.name} (skipped - {s.reason})")
                continue
            mark = "+" if s.status == "installed" else "x"
            print(f"  {mark} {s.dep.name} ({s.path or s.reason})")
        print()

    mstatus = machine.check_status(app.manifest, home=app.home)
    if mstatus:
        print("Machine Configurations")
        for s in mstatus:
            mark = "+" if s.status == "configured" else "x"
            print(f"  {mark} {s.id} - {s.description} ({s.destination})")
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    print(detect_platform().describe())
    return 0


# ---------------------------------------------------------------- deps


def cmd_deps_check(app: AppContext, args: argparse.Namespace) -> int:
    result = deps.check(app.manifest, app.detect(), package_manager=app.package_manager)
    for tier in DEPENDENCY_TIERS:
        checks = getattr(result, tier)
        if not checks:
            continue
        print(f"{tier.capitalize()}:")
        for c in checks:
            print(f"  {'✓' if c.installed else '✗'} {c.item.name} ({c.package})")
    missing = result.missing()
    if missing:
        print(f"{len(missing)} missing")

    try:
        print(f"Stow: {stow.validate_stow(app.runner)}")
    except StowError as e:
        print(f"Stow: {e.underlying}", file=sys.stderr)
        return 1
    return 1 if result.missing_critical() else 0


def cmd_deps_install(app: AppContext, args: argparse.Namespace) -> int:
    outcome = deps.install(
        app.manifest,
        app.detect(),
        only_missing=not args.all,
        package_manager=app.package_manager,
        progress=app.progress,
    )
    print(f"{len(outcome.installed)} installed, {len(outcome.failed)} failed")
    return 1 if outcome.failed else 0


# ---------------------------------------------------------------- external


def _record_external(app: AppContext, result: external.ExternalResult) -> None:
    touched = [*result.cloned, *result.updated]
    if not touched:
        return
    state = _load_or_new_state(app)
    for dep in touched:
        state_store.set_external(state, dep.id, str(expand_path(dep.destination, home=app.home)))
    app.save_state(state)


def _cmd_external_fetch(app: AppContext, args: argparse.Namespace, *, update_existing: bool) -> int:
    p = app.detect()
    if args.id:
        result = external.clone_single(
            app.manifest,
            p,
            args.id,
            dry_run=args.dry_run,
            update=update_existing,
            git=app.git,
            home=app.home,
            progress=app.progress,
        )
    else:
        result = external.clone_all(
            app.manifest,
            p,
            dry_run=args.dry_run,
            update=update_existing,
            git=app.git,
            home=app.home,
            progress=app.progress,
        )
    if not args.dry_run:
        _record_external(app, result)
    for f in result.failed:
        print(f"  ✗ {f.dep.name}: {f.error}", file=sys.stderr)
    return 1 if result.failed else 0


def cmd_external_clone(app: AppContext, args: argparse.Namespace) -> int:
    return _cmd_external_fetch(app, args, update_existing=False)


def cmd_external_update(app: AppContext, args: argparse.Namespace) -> int:
    return _cmd_external_fetch(app, args, update_existing=True)


def cmd_external_remove(app: AppContext, args: argparse.Namespace) -> int:
    external.remove(app.manifest, args.id, dry_run=args.dry_run, home=app.home, progress=app.progress)
    if not args.dry_run:
        state = app.load_state()
        if state is not None:
            state_store.remove_external(state, args.id)
            app.save_state(state)
    return 0


def cmd_external_status(app: AppContext, args: argparse.Namespace) -> int:
    for s in external.check_status(app.manifest, app.detect(), home=app.home):
        extra = f" - {s.reason}" if s.reason else ""
        print(f"  {s.status:<10} {s.dep.id} {s.path}{extra}")
    return 0


# ---------------------------------------------------------------- machine


def _prompt_options(app: AppContext, skip_prompts: bool) -> machine.PromptOptions:
    return machine.PromptOptions(skip_prompts=skip_prompts, stdin=app.stdin, stdout=app.stdout, progress=app.progress)


def cmd_machine_configure(app: AppContext, args: argparse.Namespace) -> int:
    if not app.manifest.machine_config:
        print("No machine configurations defined in manifest")
        return 0

    targets = [machine.get_machine_config(app.manifest, args.id)] if args.id else list(app.manifest.machine_config)
    opts = _prompt_options(app, args.defaults)
    state = _load_or_new_state(app)
    failed = 0
    for mc in targets:
        try:
            collected = machine.collect_prompts(mc, opts)
            rendered = machine.render_and_write(
                mc, collected.values, overwrite=args.overwrite, home=app.home, progress=app.progress
            )
        except InstallerError as e:
            print(f"  ✗ {mc.id}: {e}", file=sys.stderr)
            failed += 1
            continue
        state_store.set_machine_config(state, rendered.id, rendered.destination)
    if len(targets) > failed:
        app.save_state(state)
    return 1 if failed else 0


def cmd_machine_show(app: AppContext, args: argparse.Namespace) -> int:
    mc = machine.get_machine_config(app.manifest, args.id)
    collected = machine.collect_prompts(mc, _prompt_options(app, True))
    print(f"# {mc.description} -> {expand_path(mc.destination, home=app.home)}")
    print(machine.preview(mc, collected.values))
    return 0


def cmd_machine_remove(app: AppContext, args: argparse.Namespace) -> int:
    mc = machine.get_machine_config(app.manifest, args.id)
    machine.remove(mc, dry_run=args.dry_run, home=app.home, progress=app.progress)
    if not args.dry_run:
        state = app.load_state()
        if state is not None:
            state_store.remove_machine_config(state, mc.id)
            app.save_state(state)
    return 0


def cmd_machine_list(app: AppContext, args: argparse.Namespace) -> int:
    for mc_id, description in machine.list_machine_configs(app.manifest):
        print(f"  {mc_id:<16} {description}")
    return 0


def cmd_machine_status(app: AppContext, args: argparse.Namespace) -> int:
    for s in machine.check_status(app.manifest, home=app.home):
        print(f"  {s.status:<10} {s.id} {s.destination}")
    return 0


def cmd_machine_info(args: argparse.Namespace) -> int:
    for key, value in machine.system_info().items():
        print(f"{key:<10} {value}")
    return 0


# ---------------------------------------------------------------- stow


def _resolve_items(app: AppContext, names: List[str]):
    items = []
    for name in names:
        item = app.manifest.config_by_name(name)
        if item is None:
            raise StowError(name, "not declared in manifest")
        items.append(item)
    return items


def cmd_stow_add(app: AppContext, args: argparse.Namespace) -> int:
    items = _resolve_items(app, args.names)
    result = stow.stow_configs(
        app.dotfiles_root,
        items,
        stow.StowOptions(dry_run=args.dry_run, force=args.force),
        platform=app.detect(),
        home=app.home,
        runner=app.runner,
        progress=app.progress,
    )
    if result.success and not args.dry_run:
        state = _load_or_new_state(app)
        core = {c.name for c in app.manifest.core}
        for name in result.success:
            item = app.manifest.config_by_name(name)
            state_store.add_config(state, name, item.path, is_core=name in core)
        app.save_state(state)
    return 1 if result.failed else 0


def cmd_stow_remove(app: AppContext, args: argparse.Namespace) -> int:
    items = _resolve_items(app, args.names)
    result = stow.unstow_configs(
        app.dotfiles_root,
        items,
        stow.StowOptions(dry_run=args.dry_run),
        home=app.home,
        runner=app.runner,
        progress=app.progress,
    )
    if result.success and not args.dry_run:
        state = app.load_state()
        if state is not None:
            for name in result.success:
                state_store.remove_config(state, name)
            app.save_state(state)
    return 1 if result.failed else 0


def cmd_stow_refresh(app: AppContext, args: argparse.Namespace) -> int:
    names = args.names or state_store.installed_config_names(app.load_state())
    items = _resolve_items(app, names) if names else list(app.manifest.core)
    result = stow.restow_configs(
        app.dotfiles_root,
        items,
        stow.StowOptions(dry_run=args.dry_run, force=args.force),
        platform=app.detect(),
        home=app.home,
        runner=app.runner,
        progress=app.progress,
    )
    return 1 if result.failed else 0


# ---------------------------------------------------------------- parser


Handler = Callable[[AppContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dotfiles-installer", description="Provision dotfiles onto this machine.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--manifest", default=None, help="Path to .dotfiles.yaml or the directory holding it")
    p.add_argument("--state", default=PATHS.state_default, help="Path to installation state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("-v", "--verbose", action="store_true", help="Show log messages on the console")

    sub = p.add_subparsers(dest="command", required=True)

    def add(name: str, handler: Handler, help_text: str, parent=sub, needs_manifest: bool = True):
        sp = parent.add_parser(name, help=help_text)
        sp.set_defaults(handler=handler, needs_manifest=needs_manifest)
        return sp

    def dry_run(sp) -> None:
        sp.add_argument("--dry-run", action="store_true", help="Report what would happen without changing anything")

    sp = add("install", cmd_install, "Run the full installation")
    sp.add_argument("--auto", action="store_true", help="Non-interactive mode, use defaults")
    sp.add_argument("--minimal", action="store_true", help="Only install core configs, skip optional")
    sp.add_argument("--skip-deps", action="store_true", help="Skip dependency installation")
    sp.add_argument("--skip-stow", action="store_true", help="Skip stowing configs")
    sp.add_argument("--skip-external", action="store_true", help="Skip external dependency cloning")
    sp.add_argument("--skip-machine", action="store_true", help="Skip machine-specific configuration")
    sp.add_argument("--overwrite", action="store_true", help="Overwrite existing generated files")
    sp.add_argument("--force", action="store_true", help="Adopt conflicting files into the dotfiles repo")
    dry_run(sp)

    sp = add("update", cmd_update, "Pull the dotfiles repo and restow")
    sp.add_argument("--external", action="store_true", help="Also update external dependencies")
    sp.add_argument("--skip-restow", action="store_true")
    sp.add_argument("--force", action="store_true")
    dry_run(sp)

    sp = add("uninstall", cmd_uninstall, "Remove symlinks and installation state")
    sp.add_argument("--remove-external", action="store_true", help="Also remove external dependencies")
    sp.add_argument("--remove-machine", action="store_true", help="Also remove generated machine configs")
    dry_run(sp)

    sp = add("list", cmd_list, "Show installed and available configs")
    sp.add_argument("--all", action="store_true", help="Include archived and platform-specific items")

    add("detect", cmd_detect, "Show platform information", needs_manifest=False)

    dp = sub.add_parser("deps", help="Check or install dependencies").add_subparsers(dest="deps_command", required=True)
    add("check", cmd_deps_check, "Check dependency status", parent=dp)
    sp = add("install", cmd_deps_install, "Install missing dependencies", parent=dp)
    sp.add_argument("--all", action="store_true", help="Reinstall everything, not just missing")

    xp = sub.add_parser("external", help="Manage external dependencies").add_subparsers(dest="external_command", required=True)
    for name, handler in (("clone", cmd_external_clone), ("update", cmd_external_update)):
        sp = add(name, handler, f"{name.capitalize()} external dependencies", parent=xp)
        sp.add_argument("id", nargs="?")
        dry_run(sp)
    sp = add("remove", cmd_external_remove, "Remove an external dependency", parent=xp)
    sp.add_argument("id")
    dry_run(sp)
    add("status", cmd_external_status, "Show external dependency status", parent=xp)

    mp = sub.add_parser("machine", help="Manage machine-specific configuration").add_subparsers(dest="machine_command", required=True)
    sp = add("configure", cmd_machine_configure, "Configure machine-specific settings", parent=mp)
    sp.add_argument("id", nargs="?")
    sp.add_argument("--defaults", action="store_true", help="Use defaults without prompting")
    sp.add_argument("--overwrite", action="store_true", help="Overwrite existing files")
    sp = add("show", cmd_machine_show, "Preview a machine configuration", parent=mp)
    sp.add_argument("id")
    sp = add("remove", cmd_machine_remove, "Remove a generated machine configuration", parent=mp)
    sp.add_argument("id")
    dry_run(sp)
    add("list", cmd_machine_list, "List machine configurations", parent=mp)
    add("status", cmd_machine_status, "Show machine configuration status", parent=mp)
    add("info", cmd_machine_info, "Show system information", parent=mp, needs_manifest=False)

    sp_ = sub.add_parser("stow", help="Manage symlinks for config groups").add_subparsers(dest="stow_command", required=True)
    for name, handler, help_text in (
        ("add", cmd_stow_add, "Stow config groups"),
        ("remove", cmd_stow_remove, "Unstow config groups"),
        ("refresh", cmd_stow_refresh, "Restow config groups"),
    ):
        sp = add(name, handler, help_text, parent=sp_)
        sp.add_argument("names", nargs="*" if name == "refresh" else "+")
        if name != "remove":
            sp.add_argument("--force", action="store_true", help="Adopt conflicting files")
        dry_run(sp)

    return p


def make_context(args: argparse.Namespace) -> AppContext:
    manifest = load_from_discovery(args.manifest)
    return AppContext.from_manifest(
        manifest,
        state_path=expand_path(args.state),
        progress=render_event,
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        log_path=args.log,
        console_level=logging.INFO if args.verbose else logging.WARNING,
    )

    try:
        if not args.needs_manifest:
            return args.handler(args)
        app = make_context(args)
        return args.handler(app, args)
    except InstallerError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cli() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    cli()
