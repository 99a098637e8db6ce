"""Execution context: the single owner of a run's mutable state.

One :class:`ExecutionContext` is created per command, verb or daemon run and
passed explicitly to every component. It owns the error counter, the message
sinks, the loaded configuration and the resolution caches; nothing of this
lives at module level so that tests can run independent contexts side by side.
"""
from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

from . import paths
from .logging import StructuredLogger
from .messages import Level, MessagePrinter, format_line, message_prefix

if TYPE_CHECKING:
    from .commands import VerbRegistry
    from .config import Configuration
    from .dbms.registry import BackendRegistry
    from .resolver import ResolvedInstance, ResolvedService


class RunExit(Exception):
    """Raised by :meth:`ExecutionContext.exit` to end the run with ``code``."""

    def __init__(self, code: int) -> None:
        super().__init__(f"exit with code {code}")
        self.code = code


@dataclass
class ExecutionContext:
    """Run state shared by the components of one process run."""

    command: str | None = None
    verb: str | None = None
    daemon: str | None = None
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    host: str = ""
    user: str = ""
    verbose_enabled: bool = False
    dummy_run: bool = False
    colored: bool = False
    errors: int = 0
    clock: Callable[[], datetime] = datetime.now
    started: datetime | None = None
    args: list[str] = field(default_factory=list)
    command_path: Path | None = None
    verb_path: Path | None = None
    printer: MessagePrinter = field(default_factory=MessagePrinter)
    logger: StructuredLogger | None = None
    config: Configuration | None = None
    backends: BackendRegistry | None = None
    instance: ResolvedInstance | None = None
    service: ResolvedService | None = None
    verbs: VerbRegistry | None = None

    def __post_init__(self) -> None:
        if not self.host:
            self.host = paths.hostname(self.env)
        if not self.user:
            self.user = paths.username(self.env)
        if self.started is None:
            self.started = self.clock()

    @property
    def prefix(self) -> str:
        """Return the message prefix of the run."""
        return message_prefix(self.command, self.verb, self.daemon)

    def attach_logger(self, logs_root: Path) -> StructuredLogger:
        """Start logging into the daily directory under *logs_root*."""
        self.logger = StructuredLogger(logs_root, host=self.host, user=self.user, clock=self.clock)
        return self.logger

    def _emit(self, level: Level, message: str, *, show: bool, log: bool) -> None:
        line = format_line(self.prefix, level, message)
        if show:
            self.printer.print(line, level, colored=self.colored)
        if log and self.logger is not None:
            self.logger.append(line)

    def _policy(self, attribute: str) -> bool:
        if self.config is None:
            return True
        return bool(getattr(self.config.site_config, attribute))

    def info(self, message: str, *, with_log: bool | None = None) -> None:
        """Print *message* on stdout; logged unless disabled by call or site."""
        log = self._policy("msg_out_with_log") if with_log is None else with_log
        self._emit(Level.INFO, message, show=True, log=log)

    def verbose(self, message: str, *, with_log: bool | None = None) -> None:
        """Print *message* when the run is verbose; logged per site policy."""
        log = self._policy("msg_verbose_with_log") if with_log is None else with_log
        self._emit(Level.VERBOSE, message, show=self.verbose_enabled, log=log)

    def warn(self, message: str) -> None:
        """Print a warning on stderr; always logged."""
        self._emit(Level.WARN, message, show=True, log=True)

    def error(self, message: str) -> None:
        """Print an error on stderr, always logged, and count it."""
        self._emit(Level.ERROR, message, show=True, log=True)
        self.errors += 1

    def dummy(self, message: str) -> bool:
        """Print *message* when running in dummy mode; always returns ``True``."""
        if self.dummy_run:
            self._emit(Level.DUMMY, message, show=True, log=True)
        return True

    def log(self, message: str) -> None:
        """Write a prefixed *message* to the daily log only."""
        if self.logger is not None:
            self.logger.append(self.prefix + message)

    def has_errors(self) -> bool:
        """Return whether at least one error has been reported."""
        return self.errors > 0

    def exit(self, code: int | None = None) -> NoReturn:
        """End the run with *code*, defaulting to the error count."""
        rc = self.errors if code is None else code
        if rc:
            self.info(f"exiting with code {rc}")
        else:
            self.verbose(f"exiting with code {rc}")
        raise RunExit(rc)


__all__ = ["ExecutionContext", "RunExit"]
