from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple

from .lib.env import PATHS, expand_path

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "dotfiles-installer.log"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

_MARKER = "_dotfiles_log_path"


def _open_log_file(requested: Path) -> Tuple[logging.FileHandler, Path]:
    try:
        requested.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(requested, encoding="utf-8"), requested
    except OSError:
        fallback = Path.cwd() / FALLBACK_LOG_NAME
        return logging.FileHandler(fallback, encoding="utf-8"), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.DEBUG,
    also_console: bool = True,
    console_level: int = logging.WARNING,
) -> str:
    """Configure the root logger once per process.

    The log file receives every command the installer runs and every skip or
    failure decision. The console only shows warnings unless ``console_level``
    is lowered; user-facing progress is printed by the CLI, not by logging.

    An unwritable ``log_path`` falls back to ``./dotfiles-installer.log``.
    Returns the path actually written to.
    """

    root = logging.getLogger()
    already = getattr(root, _MARKER, None)
    if already is not None:
        return already

    root.setLevel(level)
    file_handler, chosen = _open_log_file(expand_path(log_path))
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    file_handler.setLevel(level)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.setLevel(console_level)
        root.addHandler(console)

    setattr(root, _MARKER, str(chosen))
    logging.getLogger(__name__).debug("Logging to %s (requested %s)", chosen, log_path)
    return str(chosen)
