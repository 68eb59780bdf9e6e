from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dotfiles_installer.logging_utils import configure_logging


@pytest.fixture
def clean_root():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    marker = getattr(root, "_dotfiles_log_path", None)
    if marker is not None:
        delattr(root, "_dotfiles_log_path")
    yield root
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    if marker is None:
        if hasattr(root, "_dotfiles_log_path"):
            delattr(root, "_dotfiles_log_path")
    else:
        setattr(root, "_dotfiles_log_path", marker)


def test_unwritable_path_falls_back_to_cwd(clean_root, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    chosen = configure_logging(str(blocker / "install.log"), also_console=False)

    assert chosen == str(tmp_path / "dotfiles-installer.log")
    logging.getLogger("dotfiles_installer.test").info("CMD stow -v")
    assert "CMD stow -v" in Path(chosen).read_text(encoding="utf-8")


def test_second_call_keeps_first_configuration(clean_root, tmp_path: Path) -> None:
    first = configure_logging(str(tmp_path / "a.log"), also_console=False)
    count = len(clean_root.handlers)

    assert configure_logging(str(tmp_path / "b.log")) == first
    assert len(clean_root.handlers) == count
