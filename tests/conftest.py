from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

import pytest
import yaml

from dotfiles_installer.context import AppContext
from dotfiles_installer.lib.platform_detect import Platform
from dotfiles_installer.manifest import load_manifest

from tests._fixtures.fakes import FakeGit, FakePackageManager, FakeRunner, make_platform


@pytest.fixture
def linux() -> Platform:
    return make_platform()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    d = tmp_path / "dotfiles"
    d.mkdir()
    return d


@pytest.fixture
def write_manifest(dotfiles: Path):
    """Write a manifest dict as .dotfiles.yaml and create any listed group directories."""

    def _write(data: Dict[str, Any], *, groups: Sequence[str] = ()) -> Path:
        for g in groups:
            (dotfiles / g).mkdir(parents=True, exist_ok=True)
        path = dotfiles / ".dotfiles.yaml"
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_ctx(home: Path, tmp_path: Path, linux: Platform):
    def _make(manifest_path: Path, **kw: Any) -> AppContext:
        kw.setdefault("runner", FakeRunner())
        kw.setdefault("git", FakeGit())
        kw.setdefault("package_manager", FakePackageManager())
        kw.setdefault("detector", lambda: linux)
        kw.setdefault("state_path", tmp_path / "state" / "state.json")
        return AppContext.from_manifest(load_manifest(manifest_path), home=home, **kw)

    return _make
