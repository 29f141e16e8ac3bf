"""Combining start flags with stored and fixed configuration."""

from __future__ import annotations

import copy
import logging
import os
import platform

from . import configmanager
from .config import Config, _macos, _macos13_or_newer, current_profile, templates_dir
from .startflags import (
    DEFAULT_MOUNT_TYPE_QEMU,
    DEFAULT_MOUNT_TYPE_VZ,
    DEFAULT_VM_TYPE,
    _nested_virtualization_supported,
)

_log = logging.getLogger(__name__)


def _macos13_or_newer_on_arm() -> bool:
    return _macos13_or_newer() and platform.machine() == "arm64"


def template_file() -> str:
    """Return the path of the default configuration template."""
    return os.path.join(templates_dir(), "default.yaml")


def set_config_defaults(config: Config) -> None:
    """Fill in the VM type, mount type and hostname where they are missing."""
    if not config.vm_type:
        config.vm_type = DEFAULT_VM_TYPE
        # on macOS without qemu, use the virtualization framework
        if _macos13_or_newer():
            try:
                configmanager._assert_qemu_img()
            except FileNotFoundError:
                config.vm_type = "vz"

    if not config.mount_type:
        config.mount_type = DEFAULT_MOUNT_TYPE_QEMU
        if _macos13_or_newer() and config.vm_type == "vz":
            config.mount_type = DEFAULT_MOUNT_TYPE_VZ

    if not config.hostname:
        config.hostname = current_profile().id


def set_fixed_configs(config: Config) -> None:
    """Restore settings that cannot change after the instance was created."""
    try:
        fixed = configmanager.load_from(current_profile().state_file())
    except configmanager.ConfigError:
        return

    def warn_if_changed(name: str, new: str, old: str) -> None:
        if new != old:
            _log.warning("'%s' cannot be updated after initial setup, discarded", name)

    if fixed.arch:
        warn_if_changed("architecture", config.arch, fixed.arch)
        config.arch = fixed.arch
    if fixed.vm_type:
        warn_if_changed("virtual machine type", config.vm_type, fixed.vm_type)
        config.vm_type = fixed.vm_type
    if fixed.runtime:
        warn_if_changed("runtime", config.runtime, fixed.runtime)
        config.runtime = fixed.runtime
    if fixed.mount_type:
        warn_if_changed("volume mount type", config.mount_type, fixed.mount_type)
        config.mount_type = fixed.mount_type
    if fixed.network.address and not config.network.address:
        _log.warning("network address cannot be disabled once enabled")
        config.network.address = True


_FLAG_FIELDS = (
    ("arch", "arch"),
    ("disk", "disk"),
    ("runtime", "runtime"),
    ("cpu", "cpu"),
    ("cpu-type", "cpu_type"),
    ("memory", "memory"),
    ("mount", "mounts"),
    ("mount-type", "mount_type"),
    ("mount-inotify", "mount_inotify"),
    ("ssh-agent", "forward_agent"),
    ("ssh-config", "ssh_config"),
    ("ssh-port", "ssh_port"),
    ("env", "env"),
    ("hostname", "hostname"),
)

_KUBERNETES_FIELDS = (
    ("kubernetes", "enabled"),
    ("kubernetes-version", "version"),
    ("k3s-arg", "k3s_args"),
)

_NETWORK_FIELDS = (
    ("dns", "dns_resolvers"),
    ("dns-host", "dns_hosts"),
    ("network-host-addresses", "host_addresses"),
)


def merge_unchanged(config: Config, current: Config, changed: set[str]) -> None:
    """Take values from the current configuration for flags not given.

    Docker settings and provision scripts can only be set in the
    configuration file, so they always come from current.
    """
    config.docker = copy.deepcopy(current.docker)
    config.provision = copy.deepcopy(current.provision)

    for flag, attr in _FLAG_FIELDS:
        if flag not in changed:
            setattr(config, attr, copy.deepcopy(getattr(current, attr)))
    for flag, attr in _KUBERNETES_FIELDS:
        if flag not in changed:
            setattr(config.kubernetes, attr, copy.deepcopy(getattr(current.kubernetes, attr)))
    for flag, attr in _NETWORK_FIELDS:
        if flag not in changed:
            setattr(config.network, attr, copy.deepcopy(getattr(current.network, attr)))

    if "activate" not in changed and current.activate_runtime is not None:
        config.activate_runtime = current.activate_runtime

    if _macos():
        if "network-address" not in changed:
            config.network.address = current.network.address
        if _macos13_or_newer() and "vm-type" not in changed:
            config.vm_type = current.vm_type
        if _macos13_or_newer_on_arm() and "vz-rosetta" not in changed:
            config.vz_rosetta = current.vz_rosetta
        if _nested_virtualization_supported() and "nested-virtualization" not in changed:
            config.nested_virtualization = current.nested_virtualization