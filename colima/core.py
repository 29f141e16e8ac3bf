"""Checks on the Lima installation."""

from __future__ import annotations

import json
import logging
import subprocess

from semver import Version

from . import cli

_log = logging.getLogger(__name__)

LIMA_VERSION = "v0.18.0"
"""The minimum supported Lima version."""


def check_lima_version(version: str) -> str:
    """Check a Lima version string against the minimum supported version.

    Any pre-release suffix is dropped before the comparison and the
    shortened version is returned. A development build ("HEAD") is accepted
    with a warning. Raises ValueError for a malformed version and
    RuntimeError for one that is too old.
    """
    version = version.split("-", 1)[0]

    if version == "HEAD":
        _log.warning(
            "to avoid compatibility issues, ensure lima development version (%s) "
            "in use is not lower than %s",
            version,
            LIMA_VERSION,
        )
        return version

    minimum = Version.parse(LIMA_VERSION.removeprefix("v"))
    try:
        current = Version.parse(version.removeprefix("v"))
    except (ValueError, TypeError) as err:
        raise ValueError(f"invalid semver version for Lima: {err}") from err

    if minimum.compare(current) > 0:
        raise RuntimeError(
            f"minimum Lima version supported is {LIMA_VERSION}, "
            f"current version is {version}"
        )
    return version


def lima_version_supported() -> str:
    """Check that the installed Lima is supported; return its version."""
    try:
        out = cli.command("limactl", "info").output()
    except (OSError, subprocess.CalledProcessError) as err:
        raise RuntimeError(f"error checking Lima version: {err}") from err

    try:
        info = json.loads(out)
    except json.JSONDecodeError as err:
        raise ValueError(f"error decoding 'limactl info' json: {err}") from err

    version = info.get("version", "") if isinstance(info, dict) else ""
    if not isinstance(version, str):
        raise ValueError(f"error decoding 'limactl info' json: invalid version {version!r}")
    return check_lima_version(version)