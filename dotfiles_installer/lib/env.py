from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Paths:
    config_dir: str = "~/.config/dotfiles-installer"
    manifest_names: tuple[str, ...] = (".dotfiles.yaml", ".dotfiles.yml")
    dotfiles_candidates: tuple[str, ...] = ("~/dotfiles", "~/.dotfiles")

    @property
    def state_default(self) -> str:
        return f"{self.config_dir}/state.json"

    @property
    def log_default(self) -> str:
        return f"{self.config_dir}/install.log"


PATHS = Paths()


def home_dir() -> Path:
    home = os.environ.get("HOME")
    if home:
        return Path(home)
    return Path.home()


def expand_path(path: str, *, home: Optional[Path] = None) -> Path:
    """Expand a leading ``~`` against ``home`` (default: $HOME)."""

    if path == "~":
        return home or home_dir()
    if path.startswith("~/"):
        return (home or home_dir()) / path[2:]
    return Path(os.path.normpath(path))
