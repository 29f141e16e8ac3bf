"""Propagation of host file modifications to the VM for container volumes."""

from __future__ import annotations

import json
import logging
import os
import queue
import stat
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Protocol

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .process import Dependency, Process

NAME = "inotify"
VOLUMES_INTERVAL = 5.0
VM_WAIT_INTERVAL = 5.0
_RATE_WINDOW = 0.5
_RATE_MAX_ITEMS = 50
_POLL_TICK = 0.5

_CONTAINERD = "containerd"
_DOCKER = "docker"

_log = logging.getLogger(__name__)


class Guest(Protocol):
    """Commands run inside the VM."""

    def run_quiet(self, *args: str) -> None: ...

    def run_output(self, *args: str) -> str: ...


def omit_children_directories(dirs: Iterable[str]) -> list[str]:
    """Return the sorted unique directories that are not inside another one."""
    kept: list[str] = []
    prefixes: list[str] = []
    for directory in sorted(dirs):
        if directory in kept:
            continue
        if any(directory.startswith(prefix) for prefix in prefixes):
            continue
        kept.append(directory)
        prefixes.append(directory.removesuffix("/") + "/")
    return kept


@dataclass(frozen=True)
class ModEvent:
    """A modification of a file on the host."""

    path: str
    file_mode: int

    def mode(self) -> str:
        """The permission bits in octal, as chmod takes them."""
        return format(self.file_mode, "o")


@dataclass
class RateLimiter:
    """Admits at most 50 unique paths in each half-second window."""

    _last: Optional[float] = None
    _seen: set[str] = field(default_factory=set)

    def allow(self, path: str, now: Optional[float] = None) -> bool:
        """Whether an event for path should be handled at time now (seconds)."""
        if now is None:
            now = time.monotonic()
        if self._last is not None and now - self._last < _RATE_WINDOW:
            if path in self._seen:
                return False
            if len(self._seen) > _RATE_MAX_ITEMS:
                return False
        else:
            self._last = now
            self._seen = set()
        self._seen.add(path)
        return True


class _ModificationHandler(FileSystemEventHandler):
    def __init__(self, callback: Callable[[ModEvent], Any]) -> None:
        super().__init__()
        self._callback = callback

    def on_modified(self, event: Any) -> None:
        if event.is_directory:
            return
        path = event.src_path
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        _log.debug("received modification event for %s", path)
        try:
            info = os.stat(path)
        except OSError as err:
            _log.debug("unable to stat inotify file '%s': %s", path, err)
            return
        if stat.S_ISDIR(info.st_mode):
            _log.debug("'%s' is directory, ignoring.", path)
            return
        self._callback(ModEvent(path=path, file_mode=stat.S_IMODE(info.st_mode)))


class DirWatcher:
    """Watches directories recursively for file modifications."""

    def watch(
        self,
        dirs: Iterable[str],
        callback: Callable[[ModEvent], Any],
        stop_event: threading.Event,
    ) -> Any:
        """Start watching in the background until stop_event is set.

        callback receives a ModEvent for every modified file. Raises if a
        directory cannot be watched.
        """
        observer = Observer()
        handler = _ModificationHandler(callback)
        for directory in dirs:
            path = os.path.realpath(os.path.expanduser(directory))
            if not os.path.isdir(path):
                raise FileNotFoundError(
                    f"error watching directory recursively '{path}': no such directory"
                )
            observer.schedule(handler, path, recursive=True)
        observer.start()

        def stop_when_done() -> None:
            stop_event.wait()
            observer.stop()
            observer.join()
            _log.debug("stopping watcher")

        threading.Thread(target=stop_when_done, daemon=True).start()
        return observer


class InotifyProcess(Process):
    """Syncs file modifications in container volumes to the VM."""

    def __init__(
        self,
        guest: Guest,
        runtime: str,
        dirs: Iterable[str],
        watcher: Optional[DirWatcher] = None,
    ) -> None:
        self.guest = guest
        self.runtime = runtime
        self.vm_vols = omit_children_directories(dirs)
        self.watcher = watcher or DirWatcher()
        self._limiter = RateLimiter()

    def name(self) -> str:
        return NAME

    def alive(self, daemon_running: bool) -> None:
        """Alive whenever the parent daemon is running."""
        if not daemon_running:
            raise RuntimeError("inotify not running")

    def dependencies(self) -> tuple[list[Dependency], bool]:
        return [], False

    def fetch_volumes(self, *args: str) -> list[str]:
        """Return the mounted volumes of running containers within the VM mounts.

        args is the container client command, e.g. ("docker",).
        """
        try:
            out = self.guest.run_output(*args, "ps", "-q")
        except Exception as err:
            raise RuntimeError(f"error listing containers: {err}") from err
        containers = out.split()
        if not containers:
            return []
        _log.debug("found containers %s", containers)

        try:
            out = self.guest.run_output(*args, "inspect", *containers)
        except Exception as err:
            raise RuntimeError(f"error inspecting containers: {err}") from err
        try:
            inspected = json.loads(out)
        except json.JSONDecodeError as err:
            raise RuntimeError("error decoding docker response") from err

        sources = [
            mount.get("Source", "")
            for container in inspected or []
            for mount in container.get("Mounts") or []
        ]
        vols = omit_children_directories(
            source
            for source in sources
            if any(source.startswith(parent) for parent in self.vm_vols)
        )
        _log.debug("found volumes %s", vols)
        return vols

    def container_volumes(self) -> list[str]:
        """Return the volumes of all running containers for the runtime."""
        if not self.runtime:
            raise ValueError("empty runtime")

        if self.runtime != _CONTAINERD:
            try:
                return self.fetch_volumes(_DOCKER)
            except RuntimeError as err:
                raise RuntimeError(f"error fetching docker volumes: {err}") from err

        try:
            out = self.guest.run_output("sudo", "nerdctl", "namespace", "list", "-q")
        except Exception as err:
            raise RuntimeError(f"error retrieving containerd namespaces: {err}") from err

        vols: list[str] = []
        for namespace in out.split():
            try:
                vols.extend(self.fetch_volumes("sudo", "nerdctl", "--namespace", namespace))
            except RuntimeError as err:
                raise RuntimeError(f"error retrieving containerd volumes: {err}") from err
        return vols

    def handle_event(self, event: ModEvent) -> bool:
        """Sync one modification to the VM; return whether it was synced."""
        if not self._limiter.allow(event.path):
            return False

        try:
            self.guest.run_quiet("stat", event.path)
        except Exception as err:
            _log.debug("cannot stat '%s': %s", event.path, err)
            return False

        _log.info("syncing inotify event for %s", event.path)
        try:
            self.guest.run_quiet("sudo", "/bin/chmod", event.mode(), event.path)
        except Exception as err:
            _log.debug("error syncing inotify event: %s", err)
            return False
        return True

    def start(self, stop_event: threading.Event) -> None:
        """Wait for the VM, then sync modifications until stop_event is set."""
        if not self.runtime:
            raise ValueError("empty runtime")

        _log.info("waiting for VM to start")
        if not self._wait_for_vm(stop_event):
            return
        _log.info("VM started")
        self._handle_events(stop_event)

    def _wait_for_vm(self, stop_event: threading.Event) -> bool:
        while not stop_event.is_set():
            _log.info("waiting 5 secs for VM")
            if stop_event.wait(VM_WAIT_INTERVAL):
                return False
            try:
                self.guest.run_quiet("uname", "-a")
            except Exception:
                continue
            return True
        return False

    def _handle_events(self, stop_event: threading.Event) -> None:
        events: "queue.Queue[ModEvent]" = queue.Queue()
        current_vols: list[str] = []
        watch_stop: Optional[threading.Event] = None
        next_poll = time.monotonic() + VOLUMES_INTERVAL

        try:
            while not stop_event.is_set():
                try:
                    self.handle_event(events.get(timeout=_POLL_TICK))
                except queue.Empty:
                    pass

                if time.monotonic() < next_poll:
                    continue
                next_poll = time.monotonic() + VOLUMES_INTERVAL

                try:
                    vols = self.container_volumes()
                except (RuntimeError, ValueError) as err:
                    _log.error("%s", err)
                    continue
                if vols == current_vols:
                    continue

                _log.debug("volumes changed from: %s, to: %s", current_vols, vols)
                current_vols = vols

                if watch_stop is not None:
                    # keep the old watcher briefly so no event is missed
                    timer = threading.Timer(1.0, watch_stop.set)
                    timer.daemon = True
                    timer.start()

                watch_stop = threading.Event()
                try:
                    self.watcher.watch(vols, events.put, watch_stop)
                except Exception as err:
                    _log.error("error running watcher: %s", err)
        finally:
            if watch_stop is not None:
                watch_stop.set()