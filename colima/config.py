"""Application configuration, profiles and configuration directories."""

from __future__ import annotations

import ipaddress
import logging
import os
import platform
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

APP_NAME = "colima"
CONFIG_FILE_NAME = "colima.yaml"

_APP_VERSION = "development"
_REVISION = "unknown"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionInfo:
    """Application version information."""

    version: str
    revision: str


def app_version() -> VersionInfo:
    """Return the application version."""
    return VersionInfo(version=_APP_VERSION, revision=_REVISION)


def _macos() -> bool:
    return sys.platform == "darwin"


def _macos13_or_newer() -> bool:
    if not _macos():
        return False
    release = platform.mac_ver()[0]
    try:
        return int(release.split(".")[0]) >= 13
    except ValueError:
        return False


def _home_dir() -> str:
    return os.path.expanduser("~")


# value conversion for decoded YAML data


def _int(value: Any, key: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key}: expected an integer, got {value!r}")
    return value


def _float(value: Any, key: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{key}: expected a number, got {value!r}")
    return float(value)


def _bool(value: Any, key: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TypeError(f"{key}: expected a boolean, got {value!r}")
    return value


def _str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        raise TypeError(f"{key}: expected a string, got {value!r}")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _list(value: Any, key: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{key}: expected a list, got {value!r}")
    return value


def _mapping(value: Any, key: str) -> Mapping[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{key}: expected a mapping, got {value!r}")
    return value


def _str_map(value: Any, key: str) -> dict[str, str]:
    return {_str(k, key): _str(v, key) for k, v in _mapping(value, key).items()}


def _memory_value(memory: float) -> float | int:
    return int(memory) if float(memory).is_integer() else memory


@dataclass
class Kubernetes:
    """Kubernetes configuration."""

    enabled: bool = False
    version: str = ""
    k3s_args: list[str] = field(default_factory=list)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "version": self.version,
            "k3sArgs": list(self.k3s_args),
        }

    @classmethod
    def _from_dict(cls, data: Any) -> "Kubernetes":
        d = _mapping(data, "kubernetes")
        return cls(
            enabled=_bool(d.get("enabled"), "kubernetes.enabled"),
            version=_str(d.get("version"), "kubernetes.version"),
            k3s_args=[_str(a, "kubernetes.k3sArgs") for a in _list(d.get("k3sArgs"), "kubernetes.k3sArgs")],
        )


@dataclass
class Network:
    """VM network configuration."""

    address: bool = False
    dns_resolvers: list[str] = field(default_factory=list)
    dns_hosts: dict[str, str] = field(default_factory=dict)
    host_addresses: bool = False

    def _to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "dns": list(self.dns_resolvers),
            "dnsHosts": dict(self.dns_hosts),
            "hostAddresses": self.host_addresses,
        }

    @classmethod
    def _from_dict(cls, data: Any) -> "Network":
        d = _mapping(data, "network")
        resolvers = [
            str(ipaddress.ip_address(_str(ip, "network.dns")))
            for ip in _list(d.get("dns"), "network.dns")
        ]
        return cls(
            address=_bool(d.get("address"), "network.address"),
            dns_resolvers=resolvers,
            dns_hosts=_str_map(d.get("dnsHosts"), "network.dnsHosts"),
            host_addresses=_bool(d.get("hostAddresses"), "network.hostAddresses"),
        )


@dataclass
class Mount:
    """A volume mount."""

    location: str = ""
    mount_point: str = ""
    writable: bool = False

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"location": self.location}
        if self.mount_point:
            out["mountPoint"] = self.mount_point
        out["writable"] = self.writable
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> "Mount":
        d = _mapping(data, "mounts")
        return cls(
            location=_str(d.get("location"), "mounts.location"),
            mount_point=_str(d.get("mountPoint"), "mounts.mountPoint"),
            writable=_bool(d.get("writable"), "mounts.writable"),
        )


@dataclass
class Provision:
    """A provision script."""

    mode: str = ""
    script: str = ""

    def _to_dict(self) -> dict[str, Any]:
        return {"mode": self.mode, "script": self.script}

    @classmethod
    def _from_dict(cls, data: Any) -> "Provision":
        d = _mapping(data, "provision")
        return cls(
            mode=_str(d.get("mode"), "provision.mode"),
            script=_str(d.get("script"), "provision.script"),
        )


@dataclass
class Config:
    """The application configuration."""

    cpu: int = 0
    disk: int = 0
    memory: float = 0.0
    arch: str = ""
    cpu_type: str = ""
    network: Network = field(default_factory=Network)
    env: dict[str, str] = field(default_factory=dict)
    hostname: str = ""

    ssh_port: int = 0
    forward_agent: bool = False
    ssh_config: bool = False

    vm_type: str = ""
    vz_rosetta: bool = False
    nested_virtualization: bool = False
    disk_image: str = ""

    mounts: list[Mount] = field(default_factory=list)
    mount_type: str = ""
    mount_inotify: bool = False

    runtime: str = ""
    activate_runtime: Optional[bool] = None

    kubernetes: Kubernetes = field(default_factory=Kubernetes)
    docker: dict[str, Any] = field(default_factory=dict)
    provision: list[Provision] = field(default_factory=list)

    def mounts_or_default(self) -> list[Mount]:
        """Return the configured mounts, or the home and temp directories."""
        if self.mounts:
            return self.mounts
        return [
            Mount(location=_home_dir(), writable=True),
            Mount(location=os.path.join("/tmp", current_profile().id), writable=True),
        ]

    def auto_activate(self) -> bool:
        """Whether host client configuration is activated automatically."""
        return True if self.activate_runtime is None else self.activate_runtime

    def empty(self) -> bool:
        """Whether the configuration is empty."""
        return self.runtime == ""

    def driver_label(self) -> str:
        """A human readable name of the virtualization driver."""
        if _macos13_or_newer() and self.vm_type == "vz":
            return "macOS Virtualization.Framework"
        return "QEMU"

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration in its file format, omitting empty fields."""
        out: dict[str, Any] = {}

        def put(key: str, value: Any) -> None:
            if value:
                out[key] = value

        put("cpu", self.cpu)
        put("disk", self.disk)
        if self.memory:
            out["memory"] = _memory_value(self.memory)
        put("arch", self.arch)
        put("cpuType", self.cpu_type)
        if self.network != Network():
            out["network"] = self.network._to_dict()
        put("env", dict(self.env))
        out["hostname"] = self.hostname
        put("sshPort", self.ssh_port)
        put("forwardAgent", self.forward_agent)
        put("sshConfig", self.ssh_config)
        put("vmType", self.vm_type)
        put("rosetta", self.vz_rosetta)
        put("nestedVirtualization", self.nested_virtualization)
        put("diskImage", self.disk_image)
        put("mounts", [m._to_dict() for m in self.mounts])
        put("mountType", self.mount_type)
        put("mountInotify", self.mount_inotify)
        put("runtime", self.runtime)
        if self.activate_runtime is not None:
            out["autoActivate"] = self.activate_runtime
        if self.kubernetes != Kubernetes():
            out["kubernetes"] = self.kubernetes._to_dict()
        put("docker", dict(self.docker))
        put("provision", [p._to_dict() for p in self.provision])
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Build a configuration from its file format; unknown keys are ignored."""
        d = _mapping(data, "config")
        activate = d.get("autoActivate")
        return cls(
            cpu=_int(d.get("cpu"), "cpu"),
            disk=_int(d.get("disk"), "disk"),
            memory=_float(d.get("memory"), "memory"),
            arch=_str(d.get("arch"), "arch"),
            cpu_type=_str(d.get("cpuType"), "cpuType"),
            network=Network._from_dict(d.get("network")),
            env=_str_map(d.get("env"), "env"),
            hostname=_str(d.get("hostname"), "hostname"),
            ssh_port=_int(d.get("sshPort"), "sshPort"),
            forward_agent=_bool(d.get("forwardAgent"), "forwardAgent"),
            ssh_config=_bool(d.get("sshConfig"), "sshConfig"),
            vm_type=_str(d.get("vmType"), "vmType"),
            vz_rosetta=_bool(d.get("rosetta"), "rosetta"),
            nested_virtualization=_bool(d.get("nestedVirtualization"), "nestedVirtualization"),
            disk_image=_str(d.get("diskImage"), "diskImage"),
            mounts=[Mount._from_dict(m) for m in _list(d.get("mounts"), "mounts")],
            mount_type=_str(d.get("mountType"), "mountType"),
            mount_inotify=_bool(d.get("mountInotify"), "mountInotify"),
            runtime=_str(d.get("runtime"), "runtime"),
            activate_runtime=None if activate is None else _bool(activate, "autoActivate"),
            kubernetes=Kubernetes._from_dict(d.get("kubernetes")),
            docker={str(k): v for k, v in _mapping(d.get("docker"), "docker").items()},
            provision=[Provision._from_dict(p) for p in _list(d.get("provision"), "provision")],
        )


# directories


def _required(path: str) -> str:
    os.makedirs(path, mode=0o755, exist_ok=True)
    return path


def _user_config_dir() -> str:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return xdg
    if _macos():
        return os.path.join(_home_dir(), "Library", "Application Support")
    return os.path.join(_home_dir(), ".config")


def _user_cache_dir() -> str:
    if _macos():
        return os.path.join(_home_dir(), "Library", "Caches")
    return os.path.join(_home_dir(), ".cache")


def _base_dir() -> str:
    colima_home = os.environ.get("COLIMA_HOME", "")
    if colima_home and os.path.exists(colima_home):
        return colima_home

    directory = os.path.join(_home_dir(), ".colima")
    xdg_dir = os.environ.get("XDG_CONFIG_HOME")

    if os.path.exists(directory):
        if xdg_dir is not None:
            _log.warning("found ~/.colima, ignoring $XDG_CONFIG_HOME...")
            _log.warning("delete ~/.colima to use $XDG_CONFIG_HOME as config directory")
            _log.warning('or run `mv ~/.colima "%s"`', os.path.join(xdg_dir, "colima"))
        return directory
    if xdg_dir is not None:
        return os.path.join(xdg_dir, "colima")

    if _macos():
        return directory

    return os.path.join(_user_config_dir(), "colima")


def config_base_dir() -> str:
    """Return the base configuration directory, creating it if missing."""
    return _required(_base_dir())


def cache_dir() -> str:
    """Return the cache directory, creating it if missing."""
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    base = xdg if xdg else _user_cache_dir()
    return _required(os.path.join(base, "colima"))


def templates_dir() -> str:
    """Return the templates directory, creating it if missing."""
    return _required(os.path.join(_base_dir(), "_templates"))


def lima_dir() -> str:
    """Return the Lima home directory, creating it if missing."""
    lima_home = os.environ.get("LIMA_HOME", "")
    if lima_home:
        return _required(lima_home)
    return _required(os.path.join(_base_dir(), "_lima"))


def ssh_config_file() -> str:
    """Return the path of the generated SSH config."""
    return os.path.join(config_base_dir(), "ssh_config")


# profiles


@dataclass(frozen=True)
class Profile:
    """An instance profile."""

    id: str
    display_name: str
    short_name: str

    def config_dir(self) -> str:
        """Return the profile's configuration directory, creating it if missing."""
        return _required(os.path.join(config_base_dir(), self.short_name))

    def lima_instance_dir(self) -> str:
        """Return the directory of the Lima instance."""
        return os.path.join(lima_dir(), self.id)

    def file(self) -> str:
        """Return the path of the config file."""
        return os.path.join(self.config_dir(), CONFIG_FILE_NAME)

    def lima_file(self) -> str:
        """Return the path of the Lima config file."""
        return os.path.join(self.lima_instance_dir(), "lima.yaml")

    def state_file(self) -> str:
        """Return the path of the state file."""
        return os.path.join(self.lima_instance_dir(), CONFIG_FILE_NAME)


def profile_from_name(name: str) -> Profile:
    """Return the profile for a name."""
    if name in ("", APP_NAME, "default"):
        return Profile(id=APP_NAME, display_name=APP_NAME, short_name="default")

    name = name.removeprefix("colima-")
    return Profile(
        id="colima-" + name,
        display_name="colima [profile=" + name + "]",
        short_name=name,
    )


_profile = profile_from_name("")


def set_profile(name: str) -> None:
    """Set the current profile by name."""
    global _profile
    _profile = profile_from_name(name)


def current_profile() -> Profile:
    """Return the current profile."""
    return _profile