from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

from . import state_store
from .lib.command import Runner, run_cmd
from .lib.env import home_dir
from .lib.git import GitClient
from .lib.pkg import PackageManager
from .lib.platform_detect import Platform, detect_platform
from .manifest import Manifest, load_manifest
from .progress import ProgressFn

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything one invocation needs, built once and handed to each command.

    Collaborators (runner, detector, git, package manager, terminal streams)
    are injectable so the whole flow runs without touching the real machine.
    """

    manifest: Manifest
    dotfiles_root: Path
    home: Path = field(default_factory=home_dir)
    state_path: Optional[Path] = None
    runner: Runner = run_cmd
    detector: Callable[[], Platform] = detect_platform
    package_manager: Optional[PackageManager] = None
    git: Optional[GitClient] = None
    stdin: Optional[TextIO] = None
    stdout: Optional[TextIO] = None
    progress: Optional[ProgressFn] = None
    platform: Optional[Platform] = None

    def __post_init__(self) -> None:
        if self.git is None:
            self.git = GitClient(self.runner)
        if self.state_path is None:
            self.state_path = state_store.default_state_path()

    @classmethod
    def from_manifest(cls, manifest: Manifest, **kw: Any) -> "AppContext":
        if manifest.root is None:
            raise ValueError("manifest was not loaded from a file; pass dotfiles_root explicitly")
        return cls(manifest=manifest, dotfiles_root=manifest.root, **kw)

    def detect(self) -> Platform:
        if self.platform is None:
            self.platform = self.detector()
        return self.platform

    def load_state(self) -> Optional[Dict[str, Any]]:
        return state_store.load_state(self.state_path)

    def save_state(self, state: Dict[str, Any]) -> Path:
        return state_store.save_state(state, self.state_path)

    def reload_manifest(self) -> Manifest:
        if self.manifest.path is None:
            return self.manifest
        self.manifest = load_manifest(self.manifest.path)
        return self.manifest
