"""Editing files interactively with the user's editor."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from typing import Optional

from . import cli

_log = logging.getLogger(__name__)

_PREFERRED_EDITORS = (
    "vim",
    "code --wait --new-window",
    "nano",
)

_NEEDS_NEW_WINDOW = {
    "code",
    "code-insiders",
    "code-oss",
    "codium",
    "/Applications/Visual Studio Code.app/Contents/Resources/app/bin/code",
}

_NEEDS_WAIT = {
    "mate",
    "/Applications/TextMate 2.app/Contents/MacOS/mate",
    "/Applications/TextMate 2.app/Contents/MacOS/TextMate",
}


def resolve_editor(editor: str) -> str:
    """Return the shell command for the editor to use.

    An empty editor falls back to VS Code inside its terminal, then $EDITOR,
    then the first preferred editor found in $PATH.
    """
    if editor:
        _log.info("editing in %s", editor)

    if not editor and os.environ.get("TERM_PROGRAM") == "vscode":
        _log.info("vscode detected, editing in vscode")
        editor = "code --wait"

    if not editor:
        env_editor = os.environ.get("EDITOR", "")
        if env_editor:
            _log.info("editing in %s from $EDITOR environment variable", env_editor)
            editor = env_editor

    if not editor:
        for candidate in _PREFERRED_EDITORS:
            if shutil.which(candidate.split()[0]) is not None:
                editor = candidate
                _log.info("editing in %s", candidate)
                break

    if not editor:
        raise FileNotFoundError(
            "no editor found in $PATH, kindly set $EDITOR environment variable and try again"
        )

    if editor in _NEEDS_NEW_WINDOW:
        return json.dumps(editor) + " --wait --new-window"
    if editor in _NEEDS_WAIT:
        return json.dumps(editor) + " --wait"
    return editor


def launch_editor(editor: str, file: str) -> None:
    """Open file in the editor and wait for it to exit."""
    command = resolve_editor(editor)
    cli.command_interactive("sh", "-c", command + " " + file).run()


def wait_for_user_edit(editor: str, content: bytes) -> Optional[str]:
    """Let the user edit content in a temporary file.

    Returns the file's path, or None if the user emptied the file.
    """
    with tempfile.NamedTemporaryFile(
        prefix="colima-", suffix=".yaml", delete=False
    ) as tmp:
        tmp.write(content)
        name = tmp.name

    launch_editor(editor, name)

    try:
        with open(name, "rb") as fh:
            edited = fh.read()
    except OSError:
        return name

    if not edited.strip():
        os.remove(name)
        return None
    return name