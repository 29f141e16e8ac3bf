"""Running background processes inside a detached daemon."""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from .process import Process, process_dir

PID_FILE_NAME = "daemon.pid"
LOG_FILE_NAME = "daemon.log"

_STOP_POLL_INTERVAL = 1.0
_TICK = 0.1

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DaemonInfo:
    """Paths of the daemon's pid and log files."""

    pid_file: str
    log_file: str


def info(directory: Optional[str] = None) -> DaemonInfo:
    """Return the daemon file paths within directory (the daemon dir by default)."""
    if directory is None:
        directory = process_dir()
    return DaemonInfo(
        pid_file=os.path.join(directory, PID_FILE_NAME),
        log_file=os.path.join(directory, LOG_FILE_NAME),
    )


def status(directory: Optional[str] = None) -> int:
    """Return the pid of the running daemon; raise RuntimeError if it is not running."""
    pid_file = info(directory).pid_file
    try:
        with open(pid_file, encoding="utf-8") as fh:
            content = fh.read()
    except FileNotFoundError as err:
        raise RuntimeError(f"pid file not found: {err}") from err
    except OSError as err:
        raise RuntimeError(f"error reading pid file: {err}") from err

    try:
        pid = int(content.strip())
    except ValueError:
        pid = 0
    if pid <= 0:
        raise RuntimeError(f"invalid pid: {content}")

    try:
        os.kill(pid, 0)
    except OSError as err:
        raise RuntimeError(f"process signal(0) returned error: {err}") from err
    return pid


def stop(directory: Optional[str] = None, timeout: float = 60.0) -> bool:
    """Terminate the daemon and wait for it to exit.

    Returns False if it was not running. Raises TimeoutError if it is still
    running after timeout seconds.
    """
    try:
        pid = status(directory)
    except RuntimeError:
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as err:
        raise RuntimeError(f"error sending sigterm to daemon: {err}") from err

    _log.info("waiting for process to terminate")
    deadline = time.monotonic() + timeout
    while True:
        try:
            status(directory)
        except RuntimeError:
            return True
        if time.monotonic() >= deadline:
            raise TimeoutError(f"daemon with pid {pid} still running after {timeout}s")
        time.sleep(_STOP_POLL_INTERVAL)


def run_processes(processes: Iterable[Process], stop_event: threading.Event) -> None:
    """Run the processes concurrently until stop_event is set.

    A process that fails stops all the others, and its error is raised as
    RuntimeError once every process has returned.
    """
    processes = list(processes)
    stop_all = threading.Event()
    failures: list[tuple[str, BaseException]] = []
    lock = threading.Lock()

    def run(process: Process) -> None:
        try:
            process.start(stop_all)
        except Exception as err:
            _log.error("error starting %s: %s", process.name(), err)
            with lock:
                failures.append((process.name(), err))
            stop_all.set()

    threads = [
        threading.Thread(target=run, args=(p,), name=p.name(), daemon=True)
        for p in processes
    ]
    for thread in threads:
        thread.start()

    while not stop_all.is_set():
        if stop_event.wait(_TICK):
            stop_all.set()
    _log.info("terminate signal received")

    for thread in threads:
        thread.join()

    if failures:
        name, err = failures[0]
        raise RuntimeError(f"error starting {name}: {err}") from err


def _run_daemon(processes: list[Process], daemon_info: DaemonInfo) -> None:
    null_fd = os.open(os.devnull, os.O_RDONLY)
    os.dup2(null_fd, 0)
    log_fd = os.open(daemon_info.log_file, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    os.dup2(log_fd, 1)
    os.dup2(log_fd, 2)

    pid_fd = os.open(daemon_info.pid_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with os.fdopen(pid_fd, "w") as fh:
        fh.write(str(os.getpid()))

    log_stream = os.fdopen(os.dup(2), "w", buffering=1)
    logging.basicConfig(
        stream=log_stream,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        force=True,
    )
    _log.info("- - - - - - - - - - - - - - -")
    _log.info("daemon started by colima")
    _log.info("Run `/usr/bin/pkill -F %s` to kill the daemon", daemon_info.pid_file)

    stop_event = threading.Event()

    def on_signal(signum: int, frame: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    try:
        run_processes(processes, stop_event)
    except RuntimeError as err:
        _log.error("%s", err)
    finally:
        try:
            os.remove(daemon_info.pid_file)
        except OSError:
            pass


def start(processes: Iterable[Process], directory: Optional[str] = None) -> bool:
    """Start the processes in a detached daemon.

    Returns False if the daemon is already running, True once it was launched.
    """
    try:
        status(directory)
    except RuntimeError:
        pass
    else:
        _log.info("daemon already running, startup ignored")
        return False

    if directory is None:
        directory = process_dir()
    try:
        os.makedirs(directory, mode=0o755, exist_ok=True)
    except OSError as err:
        raise RuntimeError(f"cannot make dir: {err}") from err

    daemon_info = info(directory)
    processes = list(processes)

    child = os.fork()
    if child:
        _, wait_status = os.waitpid(child, 0)
        if os.waitstatus_to_exitcode(wait_status) != 0:
            raise RuntimeError("error starting daemon")
        return True

    exit_code = 1
    try:
        os.setsid()
        if os.fork():
            os._exit(0)
        _run_daemon(processes, daemon_info)
        exit_code = 0
    except BaseException:
        exit_code = 1
    finally:
        os._exit(exit_code)