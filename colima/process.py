"""Background processes run by the daemon, and their dependencies."""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .config import current_profile


class Dependency(ABC):
    """A requirement to be fulfilled before a process can be started."""

    @abstractmethod
    def installed(self) -> bool:
        """Whether the dependency is already in place."""

    @abstractmethod
    def install(self, host: Any) -> None:
        """Install the dependency on the host, raising on failure."""


class Process(ABC):
    """A background process managed by the daemon."""

    @abstractmethod
    def name(self) -> str:
        """The name of the process."""

    @abstractmethod
    def start(self, stop_event: threading.Event) -> None:
        """Run the process until stop_event is set, raising on failure."""

    @abstractmethod
    def alive(self, daemon_running: bool) -> None:
        """Raise if the process is not alive."""

    def dependencies(self) -> tuple[list[Dependency], bool]:
        """Return the process's dependencies and whether installing them needs root."""
        return [], False


def process_dir() -> str:
    """Return the directory holding the daemon's files."""
    return os.path.join(current_profile().config_dir(), "daemon")


@dataclass
class ProcessDependencies(Dependency):
    """The combined dependencies of several processes."""

    processes: list[Process] = field(default_factory=list)

    def installed(self) -> bool:
        """Whether every dependency of every process is installed."""
        return all(
            dep.installed()
            for process in self.processes
            for dep in process.dependencies()[0]
        )

    def install(self, host: Any) -> None:
        """Install every missing dependency, stopping at the first failure."""
        for process in self.processes:
            deps, _ = process.dependencies()
            for dep in deps:
                if dep.installed():
                    continue
                try:
                    dep.install(host)
                except Exception as err:
                    raise RuntimeError(
                        f"error occurred installing dependencies for "
                        f"'{process.name()}': {err}"
                    ) from err


def dependencies(processes: Iterable[Process]) -> tuple[ProcessDependencies, bool]:
    """Return the combined dependencies and whether root access is required."""
    processes = list(processes)
    rootful = False
    for process in processes:
        deps, root = process.dependencies()
        if root and any(not dep.installed() for dep in deps):
            rootful = True
    return ProcessDependencies(processes), rootful