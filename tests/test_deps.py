from __future__ import annotations

from dotfiles_installer.lib import deps
from dotfiles_installer.manifest import parse_manifest

from tests._fixtures.fakes import FakePackageManager, make_platform

MANIFEST = parse_manifest(
    {
        "dependencies": {
            "critical": ["git", "stow"],
            "core": [{"name": "fd", "managers": {"apt": "fd-find"}}, "tmux"],
            "optional": ["bat"],
        }
    }
)


def test_check_groups_by_tier_and_maps_names() -> None:
    pm = FakePackageManager("apt", installed={"git", "fd-find"})
    result = deps.check(MANIFEST, make_platform(), package_manager=pm)

    assert [c.item.name for c in result.critical] == ["git", "stow"]
    assert [c.package for c in result.core] == ["fd-find", "tmux"]
    assert [c.item.name for c in result.missing()] == ["stow", "tmux", "bat"]
    assert [c.item.name for c in result.missing_critical()] == ["stow"]
    assert result.all_installed() is False


def test_install_only_missing_and_continues_past_failure() -> None:
    pm = FakePackageManager("apt", installed={"git"}, fail={"tmux"})
    events = []

    outcome = deps.install(MANIFEST, make_platform(), package_manager=pm, progress=events.append)

    assert pm.updates == 1
    assert pm.install_calls == ["stow", "fd-find", "tmux", "bat"]
    assert [d.name for d in outcome.installed] == ["stow", "fd", "bat"]
    assert [f.item.name for f in outcome.failed] == ["tmux"]
    assert [d.name for d in outcome.skipped] == ["git"]
    assert any(e.outcome == "failed" and e.item == "tmux" for e in events)
    assert events[-1].current == events[-1].total == 4


def test_install_all_reinstalls_present_packages() -> None:
    pm = FakePackageManager("apt", installed={"git", "stow", "fd-find", "tmux", "bat"})
    outcome = deps.install(MANIFEST, make_platform(), only_missing=False, package_manager=pm)
    assert len(outcome.installed) == 5
    assert outcome.skipped == []


def test_install_nothing_missing_skips_index_refresh() -> None:
    pm = FakePackageManager("apt", installed={"git", "stow", "fd-find", "tmux", "bat"})
    outcome = deps.install(MANIFEST, make_platform(), package_manager=pm)
    assert pm.updates == 0
    assert outcome.installed == []
    assert len(outcome.skipped) == 5
