"""Managing the background daemon of an instance."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional, Protocol

from . import cli
from .config import Config, _home_dir, current_profile
from .inotify import InotifyProcess
from .process import Process, ProcessDependencies, dependencies, process_dir
from .vmnet import VmnetProcess


class Host(Protocol):
    """Commands run on the host."""

    def run_quiet(self, *args: str) -> None: ...

    def with_dir(self, directory: str) -> "Host": ...


@dataclass
class ProcessStatus:
    """The state of one background process."""

    name: str
    running: bool
    error: Optional[BaseException] = None


@dataclass
class Status:
    """The state of the daemon and its processes."""

    running: bool = False
    processes: list[ProcessStatus] = field(default_factory=list)


def processes_from_config(config: Config) -> list[Process]:
    """Return the background processes the configuration asks for."""
    processes: list[Process] = []
    if config.network.address:
        processes.append(VmnetProcess())
    if config.mount_inotify:
        # the guest is only needed when the daemon itself runs the process
        processes.append(
            InotifyProcess(
                guest=None,  # type: ignore[arg-type]
                runtime=config.runtime,
                dirs=[m.location for m in config.mounts_or_default()],
            )
        )
    return processes


def _default_executable() -> str:
    if sys.argv and sys.argv[0]:
        return os.path.realpath(sys.argv[0])
    return "colima"


def _clean_path(path: str) -> str:
    return os.path.realpath(os.path.expanduser(path))


class Manager:
    """Starts, stops and inspects the daemon through the host's commands."""

    def __init__(self, host: Host, executable: Optional[str] = None) -> None:
        self.host = host
        self.executable = executable or _default_executable()

    def dependencies(self, config: Config) -> tuple[ProcessDependencies, bool]:
        """Return the processes' dependencies and whether root is needed."""
        return dependencies(processes_from_config(config))

    def running(self, config: Config) -> Status:
        """Return the daemon status; raises the host's error if it is not running."""
        self.host.run_quiet(
            self.executable, "daemon", "status", current_profile().short_name
        )
        status = Status(running=True)
        for process in processes_from_config(config):
            try:
                process.alive(status.running)
            except Exception as err:
                status.processes.append(ProcessStatus(process.name(), False, err))
            else:
                status.processes.append(ProcessStatus(process.name(), True))
        return status

    def start(self, config: Config) -> None:
        """(Re)start the daemon with the processes the configuration needs."""
        try:
            self.stop(config)
        except Exception:
            pass

        try:
            os.makedirs(process_dir(), mode=0o755, exist_ok=True)
        except OSError as err:
            raise RuntimeError(f"error preparing daemon directory: {err}") from err

        args = [self.executable, "daemon", "start", current_profile().short_name]
        if config.network.address:
            args.append("--vmnet")
        if config.mount_inotify:
            args += ["--inotify", "--inotify-runtime", config.runtime]
            for mount in config.mounts_or_default():
                args += ["--inotify-dir", _clean_path(mount.location)]
        if cli.settings.verbose:
            args.append("--very-verbose")

        self.host.with_dir(_home_dir()).run_quiet(*args)

    def stop(self, config: Config) -> None:
        """Stop the daemon if it is running."""
        try:
            status = self.running(config)
        except Exception:
            return
        if not status.running:
            return
        self.host.run_quiet(
            self.executable, "daemon", "stop", current_profile().short_name
        )