from __future__ import annotations

import io
from pathlib import Path

import pytest

from dotfiles_installer.errors import DestinationExistsError, TemplateError
from dotfiles_installer.lib import machine
from dotfiles_installer.manifest import PromptField, parse_manifest

GIT = {
    "id": "git",
    "description": "Git identity",
    "destination": "~/.gitconfig.local",
    "template": "[user]\n name = {{ .user_name }}\n email = {{user_email}}",
    "prompts": [
        {"id": "user_name", "prompt": "Name", "default": "Test User"},
        {"id": "user_email", "prompt": "Email", "default": "test@example.com"},
    ],
}


def _answers(*lines: str) -> machine.PromptOptions:
    return machine.PromptOptions(stdin=io.StringIO("".join(f"{l}\n" for l in lines)), stdout=io.StringIO())


def test_skip_prompts_uses_defaults() -> None:
    m = parse_manifest({"machine_config": [GIT]})
    result = machine.collect_single(m, "git", machine.PromptOptions(skip_prompts=True))
    assert result.values == {"user_name": "Test User", "user_email": "test@example.com"}


def test_collect_all_names_the_failing_config() -> None:
    token = {"id": "token", "destination": "~/.token", "template": "{{ t }}", "prompts": [{"id": "t", "required": True}]}
    m = parse_manifest({"machine_config": [GIT, token]})
    with pytest.raises(TemplateError, match="failed to collect prompts for token"):
        machine.collect_all(m, machine.PromptOptions(skip_prompts=True))


def test_skip_prompts_fails_for_required_without_default() -> None:
    pf = PromptField(id="token", label="Token", required=True)
    with pytest.raises(TemplateError, match="no default"):
        machine.collect_field(pf, machine.PromptOptions(skip_prompts=True))


def test_empty_answer_takes_default() -> None:
    pf = PromptField(id="name", label="Name", default="Jane")
    assert machine.collect_field(pf, _answers("")) == "Jane"
    assert machine.collect_field(pf, _answers("  Bob  ")) == "Bob"


@pytest.mark.parametrize("raw,expected", [("y", "true"), ("YES", "true"), ("1", "true"), ("n", "false"), ("", "false")])
def test_confirm_normalization(raw: str, expected: str) -> None:
    pf = PromptField(id="gpg", label="Sign commits", type="confirm")
    assert machine.collect_field(pf, _answers(raw)) == expected


def test_confirm_empty_answer_is_false_even_with_default() -> None:
    pf = PromptField(id="gpg", label="Sign commits", type="confirm", default="true")
    opts = _answers("")
    assert machine.collect_field(pf, opts) == "false"
    assert "[y/N]" in opts.stdout.getvalue()


def test_confirm_default_is_returned_verbatim() -> None:
    pf = PromptField(id="gpg", label="Sign commits", type="confirm", default="yes")
    assert machine.collect_field(pf, machine.PromptOptions(skip_prompts=True)) == "yes"
    at_eof = machine.PromptOptions(stdin=io.StringIO(""), stdout=io.StringIO())
    assert machine.collect_field(pf, at_eof) == "yes"


def test_required_field_reprompts_then_accepts() -> None:
    pf = PromptField(id="email", label="Email", required=True)
    opts = _answers("", "me@example.com")
    assert machine.collect_field(pf, opts) == "me@example.com"
    assert "required" in opts.stdout.getvalue()


def test_required_field_gives_up_after_max_attempts() -> None:
    pf = PromptField(id="email", label="Email", required=True)
    opts = machine.PromptOptions(stdin=io.StringIO("\n\n\n\n"), stdout=io.StringIO(), max_attempts=2)
    with pytest.raises(TemplateError, match="after 2 attempts"):
        machine.collect_field(pf, opts)


def test_required_field_at_end_of_input() -> None:
    pf = PromptField(id="email", label="Email", required=True)
    with pytest.raises(TemplateError, match="not provided"):
        machine.collect_field(pf, machine.PromptOptions(stdin=io.StringIO(""), stdout=io.StringIO()))


def test_select_accepts_value_or_index() -> None:
    pf = PromptField(id="shell", label="Shell", type="select", options=("zsh", "fish"))
    assert machine.collect_field(pf, _answers("fish")) == "fish"
    assert machine.collect_field(pf, _answers("1")) == "zsh"
    assert machine.collect_field(pf, _answers("9", "2")) == "fish"


def test_render_template_reports_undefined_variables() -> None:
    assert machine.render_template("a={{ x }} b={{.y}}", {"x": "1", "y": "2"}) == "a=1 b=2"
    with pytest.raises(TemplateError, match="missing_one"):
        machine.render_template("{{ missing_one }}", {})


def test_render_and_write_refuses_existing_destination(home: Path) -> None:
    mc = parse_manifest({"machine_config": [GIT]}).machine_config[0]
    values = {"user_name": "A", "user_email": "a@b"}

    written = machine.render_and_write(mc, values, home=home)
    target = home / ".gitconfig.local"
    assert Path(written.destination) == target
    assert target.read_text(encoding="utf-8") == "[user]\n name = A\n email = a@b"

    target.write_text("hand edited", encoding="utf-8")
    with pytest.raises(DestinationExistsError):
        machine.render_and_write(mc, values, home=home)
    assert target.read_text(encoding="utf-8") == "hand edited"

    machine.render_and_write(mc, values, overwrite=True, home=home)
    assert "name = A" in target.read_text(encoding="utf-8")


def test_dry_run_does_not_write(home: Path) -> None:
    mc = parse_manifest({"machine_config": [GIT]}).machine_config[0]
    r = machine.render_and_write(mc, {"user_name": "A", "user_email": "a@b"}, dry_run=True, home=home)
    assert r.written is False
    assert not (home / ".gitconfig.local").exists()


def test_status_and_remove(home: Path) -> None:
    m = parse_manifest({"machine_config": [GIT]})
    assert [s.status for s in machine.check_status(m, home=home)] == ["missing"]

    mc = machine.get_machine_config(m, "git")
    machine.render_and_write(mc, {"user_name": "A", "user_email": "a@b"}, home=home)
    assert [s.status for s in machine.check_status(m, home=home)] == ["configured"]

    machine.remove(mc, home=home)
    assert not (home / ".gitconfig.local").exists()
    with pytest.raises(TemplateError, match="not configured"):
        machine.remove(mc, home=home)


def test_unknown_machine_config() -> None:
    with pytest.raises(TemplateError, match="not found"):
        machine.get_machine_config(parse_manifest({}), "nope")


def test_system_info_keys() -> None:
    info = machine.system_info()
    assert {"hostname", "user", "home", "os", "arch"} <= set(info)


def test_preview_renders_without_writing(home: Path) -> None:
    mc = parse_manifest({"machine_config": [GIT]}).machine_config[0]
    text = machine.preview(mc, {"user_name": "A", "user_email": "a@b"})
    assert text == "[user]\n name = A\n email = a@b"
    assert list(home.iterdir()) == []
