"""Conversion of start command flags into configuration values."""

from __future__ import annotations

import logging
import os
import platform

from .config import Config, Mount, _macos, _macos13_or_newer

_log = logging.getLogger(__name__)

DEFAULT_CPU = 2
DEFAULT_MEMORY = 2
DEFAULT_DISK = 100
DEFAULT_MOUNT_TYPE_QEMU = "sshfs"
DEFAULT_MOUNT_TYPE_VZ = "virtiofs"
DEFAULT_VM_TYPE = "qemu"
DEFAULT_K3S_ARGS = ("--disable=traefik",)

_INCUS = "incus"


def _nested_virtualization_supported() -> bool:
    if not _macos() or platform.machine() != "arm64":
        return False
    try:
        return int(platform.mac_ver()[0].split(".")[0]) >= 15
    except ValueError:
        return False


def mounts_from_flag(mounts: list[str]) -> list[Mount]:
    """Convert mounts in flag form (location[:mountpoint][:w]) to mounts."""
    result = []
    for mount in mounts:
        parts = mount.split(":", 2)
        mnt = Mount(location=parts[0])
        if len(parts) > 1:
            if os.path.isabs(parts[1]):
                mnt.mount_point = parts[1]
            elif parts[1] == "w":
                mnt.writable = True
        if len(parts) > 2 and parts[2] == "w":
            mnt.writable = True
        result.append(mnt)
    return result


def dns_hosts_from_flag(hosts: list[str]) -> dict[str, str]:
    """Convert name=address flags to a mapping, skipping malformed entries."""
    mapping: dict[str, str] = {}
    for host in hosts:
        name, sep, target = host.partition("=")
        if not sep:
            _log.warning("unable to parse custom dns host: %s, skipping", host)
            continue
        mapping[name] = target
    return mapping


def kubernetes_disable_args(disabled: list[str]) -> list[str]:
    """Convert components to disable into k3s arguments."""
    return ["--disable=" + component for component in disabled]


def set_flag_defaults(config: Config, changed: set[str]) -> None:
    """Fill in missing defaults and reconcile the mount type with the VM type.

    changed holds the names of flags given explicitly; it is updated when a
    flag's value is implied by another.
    """
    if not config.vm_type:
        config.vm_type = DEFAULT_VM_TYPE

    if _macos13_or_newer():
        if "vm-type" in changed and config.vm_type == "vz" and "mount-type" not in changed:
            config.mount_type = DEFAULT_MOUNT_TYPE_VZ
            changed.add("mount-type")

    if config.vm_type != "vz" and config.mount_type == DEFAULT_MOUNT_TYPE_VZ:
        config.mount_type = DEFAULT_MOUNT_TYPE_QEMU
        if "mount-type" in changed:
            _log.warning(
                "%s is only available for 'vz' vmType, using %s",
                DEFAULT_MOUNT_TYPE_VZ,
                DEFAULT_MOUNT_TYPE_QEMU,
            )

    if config.vm_type == "vz" and config.mount_type == "9p":
        config.mount_type = DEFAULT_MOUNT_TYPE_VZ
        if "mount-type" in changed:
            _log.warning("9p is only available for 'qemu' vmType, using %s", DEFAULT_MOUNT_TYPE_VZ)

    if _nested_virtualization_supported() and "nested-virtualization" not in changed:
        if config.runtime == _INCUS and config.vm_type == "vz":
            config.nested_virtualization = True