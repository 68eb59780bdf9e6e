"""CLI parser and command wiring."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from dotfiles_installer import main as cli
from dotfiles_installer.progress import ProgressEvent

MANIFEST = {
    "metadata": {"name": "cli-dots"},
    "configs": {"core": ["git"]},
    "machine_config": [
        {
            "id": "git",
            "description": "Git identity",
            "destination": "~/.gitconfig.local",
            "template": "[user]\n name = {{ user_name }}",
            "prompts": [{"id": "user_name", "prompt": "Name", "default": "Test User"}],
        }
    ],
}


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    home = tmp_path / "home"
    home.mkdir()
    dots = tmp_path / "dots"
    (dots / "git").mkdir(parents=True)
    (dots / ".dotfiles.yaml").write_text(yaml.safe_dump(MANIFEST), encoding="utf-8")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(cli, "configure_logging", lambda **kw: str(tmp_path / "log"))
    state = tmp_path / "state.json"
    return home, dots, state


def _run(env, *argv: str) -> int:
    _, dots, state = env
    return cli.main(["--manifest", str(dots), "--state", str(state), *argv])


def test_parser_global_flags_before_command() -> None:
    args = cli.build_parser().parse_args(["-v", "--state", "/tmp/s.yaml", "install", "--auto", "--minimal"])
    assert args.verbose is True
    assert args.state == "/tmp/s.yaml"
    assert args.auto and args.minimal
    assert args.dry_run is False


def test_parser_nested_commands() -> None:
    parser = cli.build_parser()
    args = parser.parse_args(["external", "clone", "tpm", "--dry-run"])
    assert args.handler is cli.cmd_external_clone
    assert args.id == "tpm"

    args = parser.parse_args(["machine", "configure", "--defaults"])
    assert args.handler is cli.cmd_machine_configure
    assert args.id is None

    args = parser.parse_args(["stow", "refresh"])
    assert args.names == []

    with pytest.raises(SystemExit):
        parser.parse_args(["stow", "add"])


def test_detect_needs_no_manifest(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **kw: "")
    assert cli.main(["detect"]) == 0
    assert "OS:" in capsys.readouterr().out


def test_missing_manifest_exits_nonzero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **kw: "")
    assert cli.main(["--manifest", str(tmp_path / "nope"), "list"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_machine_configure_defaults_writes_and_records_state(env) -> None:
    home, _, state = env

    assert _run(env, "machine", "configure", "git", "--defaults") == 0

    assert (home / ".gitconfig.local").read_text(encoding="utf-8") == "[user]\n name = Test User"
    recorded = json.loads(state.read_text(encoding="utf-8"))
    assert "git" in recorded["machine_config"]

    # existing file is left alone without --overwrite
    assert _run(env, "machine", "configure", "git", "--defaults") == 1


def test_machine_show_and_remove(env, capsys) -> None:
    home, _, state = env
    assert _run(env, "machine", "show", "git") == 0
    assert "name = Test User" in capsys.readouterr().out

    _run(env, "machine", "configure", "--defaults")
    assert _run(env, "machine", "remove", "git") == 0
    assert not (home / ".gitconfig.local").exists()
    assert json.loads(state.read_text(encoding="utf-8"))["machine_config"] == {}


def test_machine_list(env, capsys) -> None:
    assert _run(env, "machine", "list") == 0
    assert "Git identity" in capsys.readouterr().out


def test_unknown_external_id_exits_nonzero(env, capsys) -> None:
    assert _run(env, "external", "remove", "nope") == 1
    assert "not found" in capsys.readouterr().err


def test_render_event_routes_failures_to_stderr(capsys) -> None:
    cli.render_event(ProgressEvent("stow", "success", "Stowing git done", current=1, total=2))
    cli.render_event(ProgressEvent("stow", "failed", "zsh: conflict"))
    out, err = capsys.readouterr()
    assert "✓ [1/2] Stowing git done" in out
    assert "✗ zsh: conflict" in err
