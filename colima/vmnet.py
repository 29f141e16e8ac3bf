"""The vmnet network daemon process and its dependencies."""

from __future__ import annotations

import logging
import os
import queue
import socket
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

from . import cli
from .config import current_profile
from .process import Dependency, Process, process_dir

NAME = "vmnet"
SUB_PROCESS_ENV_VAR = "COLIMA_VMNET"
NET_GATEWAY = "192.168.106.1"
NET_DHCP_END = "192.168.106.254"

OPT_DIR = "/opt/colima"
BINARY_PATH = "/opt/colima/bin/socket_vmnet"
CLIENT_BINARY_PATH = "/opt/colima/bin/socket_vmnet_client"

_TICK = 0.2

_log = logging.getLogger(__name__)


class Host(Protocol):
    """Commands run on the host."""

    def run_interactive(self, *args: str) -> None: ...


def run_dir() -> str:
    """Return the directory for files of the rootful daemon, e.g. pid files."""
    return os.path.join(OPT_DIR, "run")


@dataclass(frozen=True)
class VmnetInfo:
    """Paths of the vmnet pid file and socket."""

    pid_file: str
    socket_file: str


def info() -> VmnetInfo:
    """Return the vmnet paths for the current profile."""
    return VmnetInfo(
        pid_file=os.path.join(run_dir(), f"vmnet-{current_profile().short_name}.pid"),
        socket_file=os.path.join(process_dir(), "vmnet.sock"),
    )


@dataclass
class VmnetBinaries(Dependency):
    """The socket_vmnet binaries, installed from a tar.gz archive."""

    archive: Optional[str] = None
    target_dir: str = OPT_DIR
    binaries: tuple[str, ...] = (BINARY_PATH, CLIENT_BINARY_PATH)

    def installed(self) -> bool:
        """Whether every binary exists."""
        return all(os.path.exists(binary) for binary in self.binaries)

    def install(self, host: Host) -> None:
        """Extract the archive into the target directory as root."""
        if not self.archive or not os.path.isfile(self.archive):
            raise FileNotFoundError(
                f"error retrieving vmnet archive: {self.archive!r} not found"
            )
        try:
            host.run_interactive("sudo", "mkdir", "-p", self.target_dir)
        except Exception as err:
            raise RuntimeError(f"error preparing colima privileged dir: {err}") from err
        try:
            host.run_interactive(
                "sudo",
                "sh",
                "-c",
                f"cd {self.target_dir} && tar xfz {self.archive} 2>/dev/null",
            )
        except Exception as err:
            raise RuntimeError(f"error extracting vmnet archive: {err}") from err


@dataclass
class RunDir(Dependency):
    """The directory for run files of the rootful daemon."""

    path: str = field(default_factory=run_dir)

    def installed(self) -> bool:
        """Whether the directory exists."""
        return os.path.isdir(self.path)

    def install(self, host: Host) -> None:
        """Create the directory as root."""
        host.run_interactive("sudo", "mkdir", "-p", self.path)


def _force_delete_file_if_exists(name: str) -> None:
    if os.path.exists(name) and not os.path.isdir(name):
        os.remove(name)


def _stop(pid_file: str) -> None:
    # the process is only assumed alive if the pid file exists
    if not os.path.exists(pid_file):
        return
    try:
        cli.command_interactive("sudo", "/usr/bin/pkill", "-F", pid_file).run()
    except (OSError, subprocess.CalledProcessError) as err:
        raise RuntimeError(f"error killing vmnet process: {err}") from err


class VmnetProcess(Process):
    """Runs socket_vmnet as root to give the VM a reachable address."""

    def __init__(self, vmnet_info: Optional[VmnetInfo] = None) -> None:
        self._fixed_info = vmnet_info

    def _info(self) -> VmnetInfo:
        return self._fixed_info if self._fixed_info is not None else info()

    def name(self) -> str:
        return NAME

    def alive(self, daemon_running: bool) -> None:
        """Raise if the vmnet process or its socket is not usable."""
        current = self._info()

        if os.path.exists(current.pid_file):
            try:
                cli.command("sudo", "/usr/bin/pkill", "-0", "-F", current.pid_file).run()
            except (OSError, subprocess.CalledProcessError) as err:
                raise RuntimeError(f"error checking vmnet process: {err}") from err

        if not os.path.exists(current.socket_file):
            raise RuntimeError(
                f"vmnet socket file not found error: {current.socket_file}"
            )
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as conn:
                conn.connect(current.socket_file)
        except OSError as err:
            raise RuntimeError(f"vmnet socket file error: {err}") from err

    def start(self, stop_event: threading.Event) -> None:
        """Run socket_vmnet until it exits or stop_event is set."""
        current = self._info()
        try:
            _force_delete_file_if_exists(current.socket_file)
        except OSError:
            pass

        cmd = cli.command_interactive(
            "sudo",
            BINARY_PATH,
            "--vmnet-mode", "shared",
            "--socket-group", "staff",
            "--vmnet-gateway", NET_GATEWAY,
            "--vmnet-dhcp-end", NET_DHCP_END,
            "--pidfile", current.pid_file,
            current.socket_file,
        )
        if cli.settings.verbose:
            cmd.env = {**os.environ, "DEBUG": "1"}

        done: "queue.Queue[Optional[BaseException]]" = queue.Queue(maxsize=1)

        def run() -> None:
            try:
                cmd.run()
            except Exception as err:
                done.put(err)
            else:
                done.put(None)

        threading.Thread(target=run, name="vmnet", daemon=True).start()

        while not stop_event.is_set():
            try:
                err = done.get(timeout=_TICK)
            except queue.Empty:
                continue
            if err is not None:
                raise RuntimeError(f"error running vmnet: {err}") from err
            return

        try:
            _stop(current.pid_file)
        except RuntimeError as err:
            raise RuntimeError(f"error stopping vmnet: {err}") from err

    def dependencies(self) -> tuple[list[Dependency], bool]:
        return [VmnetBinaries(), RunDir()], True