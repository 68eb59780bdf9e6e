"""Persisted installation state.

The state records what is actually active on this machine, as opposed to
what the manifest merely declares. A missing file means "never installed".
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import yaml

from .errors import StateError
from .lib.env import PATHS, expand_path

if TYPE_CHECKING:
    from .manifest import Manifest
    from .pipeline import InstallResult

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def default_state_path() -> Path:
    return expand_path(PATHS.state_default)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def load_state(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    p = Path(path) if path else default_state_path()
    if not p.exists():
        return None

    try:
        text = p.read_text(encoding="utf-8")
        if _detect_format(p) in {"yaml", "yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise StateError(f"Failed to read state file {p}: {e}") from e

    if not isinstance(data, dict):
        raise StateError(f"State file must be an object/dict, got {type(data).__name__}")

    return ensure_defaults(data)


def save_state(state: Dict[str, Any], path: Optional[Path] = None) -> Path:
    p = Path(path) if path else default_state_path()
    state["updated_at"] = _now()
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        if _detect_format(p) in {"yaml", "yml"}:
            p.write_text(yaml.safe_dump(state, sort_keys=False), encoding="utf-8")
        else:
            p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as e:
        raise StateError(f"Failed to write state file {p}: {e}") from e
    logger.info("Saved state to %s", p)
    return p


def delete_state(path: Optional[Path] = None) -> bool:
    """Remove the state file. Returns False if there was nothing to delete."""

    p = Path(path) if path else default_state_path()
    if not p.exists():
        return False
    try:
        p.unlink()
    except OSError as e:
        raise StateError(f"Failed to remove state file {p}: {e}") from e
    logger.info("Deleted state %s", p)
    return True


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with sane defaults (without overriding stored values)."""

    state.setdefault("version", STATE_VERSION)
    state.setdefault("dotfiles_path", "")
    state.setdefault("installed_at", None)
    state.setdefault("platform", {})
    state.setdefault("configs", [])
    state.setdefault("external", {})
    state.setdefault("machine_config", {})
    return state


def new_state(dotfiles_path: Path | str) -> Dict[str, Any]:
    state = ensure_defaults({})
    state["dotfiles_path"] = str(dotfiles_path)
    state["installed_at"] = _now()
    return state


def add_config(state: Dict[str, Any], name: str, path: str, *, is_core: bool = False) -> None:
    configs = state.setdefault("configs", [])
    for c in configs:
        if c.get("name") == name:
            c["path"] = path
            c["is_core"] = is_core
            return
    configs.append({"name": name, "path": path, "is_core": is_core})


def remove_config(state: Dict[str, Any], name: str) -> None:
    state["configs"] = [c for c in state.get("configs") or [] if c.get("name") != name]


def has_config(state: Optional[Dict[str, Any]], name: str) -> bool:
    return name in installed_config_names(state)


def installed_config_names(state: Optional[Dict[str, Any]]) -> List[str]:
    if not state:
        return []
    return [str(c.get("name")) for c in state.get("configs") or [] if c.get("name")]


def set_external(state: Dict[str, Any], ext_id: str, path: str, *, installed: bool = True) -> None:
    state.setdefault("external", {})[ext_id] = {"installed": installed, "path": path}


def remove_external(state: Dict[str, Any], ext_id: str) -> None:
    (state.get("external") or {}).pop(ext_id, None)


def set_machine_config(state: Dict[str, Any], mc_id: str, destination: str) -> None:
    state.setdefault("machine_config", {})[mc_id] = {"destination": destination, "configured_at": _now()}


def remove_machine_config(state: Dict[str, Any], mc_id: str) -> None:
    (state.get("machine_config") or {}).pop(mc_id, None)


def record_install(
    state: Optional[Dict[str, Any]],
    manifest: "Manifest",
    dotfiles_path: Path,
    result: "InstallResult",
) -> Dict[str, Any]:
    """Fold the successful parts of an install into the state.

    Only items whose operation succeeded are recorded; failures and skips
    leave the state untouched.
    """

    if state is None:
        state = new_state(dotfiles_path)
    state["dotfiles_path"] = str(dotfiles_path)
    if result.platform is not None:
        state["platform"] = result.platform.to_dict()

    if not result.dry_run:
        core_names = {c.name for c in manifest.core}
        for name in result.configs_stowed:
            item = manifest.config_by_name(name)
            if item is not None:
                add_config(state, item.name, item.path, is_core=item.name in core_names)

        for dep in result.external_cloned:
            set_external(state, dep.id, str(expand_path(dep.destination, home=result.home)))

        for rendered in result.machine_configs:
            if rendered.written:
                set_machine_config(state, rendered.id, rendered.destination)

    return state
