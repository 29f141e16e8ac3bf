"""Command chains, external command helpers and interactive prompts."""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

_LOG = logging.getLogger("colima")

_QUIET_LOG = logging.getLogger("colima.quiet")
_QUIET_LOG.addHandler(logging.NullHandler())
_QUIET_LOG.propagate = False


class NonFatalError(Exception):
    """An error that only produces a warning inside a command chain."""

    def __init__(self, error: BaseException | str) -> None:
        super().__init__(str(error))
        self.error = error

    def __str__(self) -> str:
        return str(self.error)


@dataclass
class CliSettings:
    """Global command line settings."""

    verbose: bool = False


settings = CliSettings()


def quoted_args(args: list[str]) -> str:
    """Render arguments as a bracketed list of quoted strings."""
    return "[" + " ".join(json.dumps(arg, ensure_ascii=False) for arg in args) + "]"


@dataclass
class Command:
    """An external command sharing this process's output streams."""

    args: list[str]
    interactive: bool = False
    env: Optional[dict[str, str]] = None
    cwd: Optional[str] = None

    def _stdin(self) -> Any:
        return None if self.interactive else subprocess.DEVNULL

    def run(self, input: str | bytes | None = None) -> None:
        """Run the command, raising CalledProcessError on a non-zero exit."""
        if input is None:
            subprocess.run(
                self.args, stdin=self._stdin(), env=self.env, cwd=self.cwd, check=True
            )
            return
        data = input.encode() if isinstance(input, str) else input
        subprocess.run(self.args, input=data, env=self.env, cwd=self.cwd, check=True)

    def output(self) -> str:
        """Run the command and return its standard output as text."""
        result = subprocess.run(
            self.args,
            stdin=self._stdin(),
            stdout=subprocess.PIPE,
            env=self.env,
            cwd=self.cwd,
            check=True,
        )
        return result.stdout.decode()


def command(command: str, *args: str) -> Command:
    """Create a command whose output goes to this process's stdout and stderr."""
    cmd = Command([command, *args])
    _LOG.debug("cmd %s", quoted_args(cmd.args))
    return cmd


def command_interactive(command: str, *args: str) -> Command:
    """Create a command that also reads from this process's stdin."""
    cmd = Command([command, *args], interactive=True)
    _LOG.debug("cmd int %s", quoted_args(cmd.args))
    return cmd


def prompt(question: str) -> bool:
    """Ask a yes/no question; only an answer starting with y or Y counts as yes."""
    print(question, end="")
    print("? [y/N] ", end="")
    print("\033[0m", end="", flush=True)

    words = sys.stdin.readline().split()
    if not words:
        return False
    return words[0][0] in ("y", "Y")


@dataclass
class CommandChain:
    """A named source of command chains."""

    name: str

    def logger(self, quiet: bool = False) -> logging.LoggerAdapter:
        """Return the chain's logger; a quiet logger discards everything."""
        base = _QUIET_LOG if quiet else _LOG
        return logging.LoggerAdapter(base, {"context": self.name})

    def init(self, quiet: bool = False) -> "ActiveCommandChain":
        """Start a new active chain."""
        return ActiveCommandChain(self.logger(quiet))


@dataclass
class _Step:
    func: Optional[Callable[[], Any]] = None
    stage: str = ""


@dataclass
class ActiveCommandChain:
    """An ordered list of stages and functions, executed by exec()."""

    log: logging.LoggerAdapter
    _steps: list[_Step] = field(default_factory=list)
    _last_stage: str = ""
    _executing: bool = False

    def add(self, func: Callable[[], Any]) -> None:
        """Append a function; it signals failure by raising."""
        self._steps.append(_Step(func=func))

    def stage(self, name: str) -> None:
        """Mark the start of a stage, or log it at once while executing."""
        if self._executing:
            self.log.info("%s ...", name)
            return
        self._steps.append(_Step(stage=name))

    def stagef(self, fmt: str, *args: Any) -> None:
        """Like stage, with printf-style formatting."""
        self.stage(fmt.replace("%v", "%s") % args)

    def exec(self) -> None:
        """Run the chain; the first fatal error stops it and is raised."""
        self._executing = True
        try:
            for step in self._steps:
                if step.func is None:
                    if step.stage:
                        self.log.info("%s ...", step.stage)
                        self._last_stage = step.stage
                    continue

                try:
                    step.func()
                except NonFatalError as err:
                    if self._last_stage:
                        self.log.warning("error at '%s': %s", self._last_stage, err)
                    else:
                        self.log.warning("%s", err)
                except Exception as err:
                    if not self._last_stage:
                        raise
                    raise RuntimeError(
                        f"error at '{self._last_stage}': {err}"
                    ) from err
        finally:
            self._executing = False

    def retry(
        self,
        stage: str,
        interval: float,
        count: int,
        func: Callable[[int], Any],
    ) -> None:
        """Add a function retried up to count more times, interval seconds apart.

        The attempt number passed to func starts from 1.
        """

        def attempt_all() -> Any:
            attempt = 1
            while True:
                try:
                    return func(attempt)
                except Exception:
                    if attempt > count:
                        raise
                if stage:
                    self.log.info("%s ...", stage)
                time.sleep(interval)
                attempt += 1

        self.add(attempt_all)