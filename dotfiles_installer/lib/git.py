from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from .command import Runner, command_exists, run_cmd

logger = logging.getLogger(__name__)


class GitClient:
    """Thin wrapper around the git executable.

    Every call blocks until git exits; failures surface as CommandError.
    """

    def __init__(self, runner: Runner = run_cmd) -> None:
        self._runner = runner

    def is_available(self) -> bool:
        return command_exists("git")

    def clone(self, url: str, dest: Path, *, depth: int = 1) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._runner(["git", "clone", "--depth", str(depth), url, str(dest)])

    def pull(self, repo: Path) -> None:
        self._runner(["git", "-C", str(repo), "pull", "--ff-only"])

    def head(self, repo: Path) -> str:
        r = self._runner(["git", "-C", str(repo), "rev-parse", "HEAD"])
        return r.stdout.strip()

    def changed_files(self, repo: Path, old: str, new: str, paths: Sequence[str] = ()) -> List[str]:
        argv = ["git", "-C", str(repo), "diff", "--name-only", old, new]
        if paths:
            argv += ["--", *paths]
        r = self._runner(argv)
        return [line.strip() for line in r.stdout.splitlines() if line.strip()]


def is_git_repo(path: Path) -> bool:
    return (path / ".git").exists()
