"""Loading, saving and validating the configuration file."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

import yaml

from . import cli
from .config import APP_NAME, Config, _macos13_or_newer, current_profile

_log = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration cannot be loaded or is invalid."""


def save_to_file(config: Config, file: str) -> None:
    """Write the configuration to a YAML file."""
    directory = os.path.dirname(file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(file, "w", encoding="utf-8") as fh:
        yaml.safe_dump(config.to_dict(), fh, sort_keys=False, default_flow_style=False)


def save(config: Config) -> None:
    """Save the configuration of the current profile."""
    save_to_file(config, current_profile().file())


def load_from(file: str) -> Config:
    """Load a configuration from a YAML file."""
    try:
        with open(file, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        return Config.from_dict(data)
    except (OSError, yaml.YAMLError, TypeError, ValueError) as err:
        raise ConfigError(f"could not load config from file: {err}") from err


def save_from_file(file: str) -> None:
    """Load a configuration from a file and save it as the current profile's."""
    save(load_from(file))


def _assert_qemu_img() -> None:
    if shutil.which("qemu-img") is None:
        raise FileNotFoundError("qemu-img not found, run 'brew install qemu' to install")


def validate_config(config: Config) -> None:
    """Raise ConfigError if the configuration cannot be used."""
    valid_mount_types = {"9p", "sshfs"}
    valid_vm_types = {"qemu"}
    if _macos13_or_newer():
        valid_mount_types.add("virtiofs")
        valid_vm_types.add("vz")

    if config.mount_type not in valid_mount_types:
        raise ConfigError(f"invalid mountType: '{config.mount_type}'")
    if config.vm_type not in valid_vm_types:
        raise ConfigError(f"invalid vmType: '{config.vm_type}'")
    if config.vm_type == "qemu":
        try:
            _assert_qemu_img()
        except FileNotFoundError as err:
            raise ConfigError(
                f"cannot use vmType: '{config.vm_type}', error: {err}"
            ) from err

    if config.disk_image.startswith(("http://", "https://")):
        raise ConfigError(
            "cannot use diskImage: remote URLs not supported, only local files can be specified"
        )


def _old_config_file() -> str:
    profile = current_profile()
    name = os.path.basename(profile.file())
    return os.path.join(os.environ.get("HOME", ""), "." + profile.id, name)


def load() -> Config:
    """Load the current profile's configuration.

    A missing file yields an empty configuration; only a file that exists
    but cannot be read raises ConfigError.
    """
    file = current_profile().file()
    if not os.path.exists(file):
        old_file = _old_config_file()
        if not os.path.exists(old_file):
            return Config()

        _log.info("settings from older %s version detected and copied", APP_NAME)
        try:
            cli.command("cp", old_file, file).run()
        except (OSError, subprocess.CalledProcessError) as err:
            _log.warning("error copying config: %s, proceeding with defaults", err)
            return Config()

    return load_from(file)


def load_instance() -> Config:
    """Load the configuration of the currently running instance."""
    return load_from(current_profile().state_file())


def teardown() -> None:
    """Delete the current profile's configuration directory."""
    directory = current_profile().config_dir()
    if os.path.exists(directory):
        shutil.rmtree(directory)