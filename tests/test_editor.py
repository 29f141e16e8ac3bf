import os
import stat
import subprocess

import pytest

from colima import editor


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("TERM_PROGRAM", raising=False)
    monkeypatch.delenv("EDITOR", raising=False)
    return monkeypatch


def test_explicit_editor_is_used(clean_env):
    clean_env.setenv("TERM_PROGRAM", "vscode")
    clean_env.setenv("EDITOR", "nano")
    assert editor.resolve_editor("vim") == "vim"


def test_vscode_terminal(clean_env):
    clean_env.setenv("TERM_PROGRAM", "vscode")
    assert editor.resolve_editor("") == "code --wait"


def test_editor_env_var(clean_env):
    clean_env.setenv("EDITOR", "nano -w")
    assert editor.resolve_editor("") == "nano -w"


def test_code_gets_wait_and_new_window(clean_env):
    assert editor.resolve_editor("code") == '"code" --wait --new-window'


def test_mate_gets_wait(clean_env):
    assert editor.resolve_editor("mate") == '"mate" --wait'


def test_preferred_editor_from_path(clean_env, tmp_path):
    fake = tmp_path / "nano"
    fake.write_text("#!/bin/sh\n")
    fake.chmod(fake.stat().st_mode | stat.S_IEXEC)
    clean_env.setenv("PATH", str(tmp_path))
    assert editor.resolve_editor("") == "nano"


def test_no_editor_found(clean_env, tmp_path):
    clean_env.setenv("PATH", str(tmp_path))
    with pytest.raises(FileNotFoundError, match="no editor found"):
        editor.resolve_editor("")


def test_wait_for_user_edit_keeps_content(clean_env):
    content = b"runtime: docker\n"
    name = editor.wait_for_user_edit("true", content)
    try:
        with open(name, "rb") as fh:
            assert fh.read() == content
        assert name.endswith(".yaml")
    finally:
        os.remove(name)


def test_wait_for_user_edit_aborted_when_emptied(clean_env):
    assert editor.wait_for_user_edit(": >", b"runtime: docker\n") is None


def test_launch_editor_failure(clean_env, tmp_path):
    target = tmp_path / "file.yaml"
    target.write_text("x")
    with pytest.raises(subprocess.CalledProcessError):
        editor.launch_editor("false", str(target))