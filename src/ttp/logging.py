"""Structured logging for TTP runs.

Every run writes into a daily directory ``<logs_dir>/<YYMMDD>/``:

* ``main.log`` receives one human readable line per logged message, formatted
  as ``YYYY-MM-DD HH:MM:SS.fffff <HOST> <USER> <message>``.
* ``operations.jsonl`` receives one JSON record per verb execution, opened with
  :meth:`StructuredLogger.operation` and closed through the returned
  :class:`OperationScope`.

Logging must never break a run: the logger disables itself when its directory
cannot be created or when a write fails.
"""
from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from . import __version__

MAIN_LOG_NAME = "main.log"
OPERATIONS_LOG_NAME = "operations.jsonl"


def daily_logs_dir(logs_root: Path, now: datetime) -> Path:
    """Return the daily logs directory for *now* under *logs_root*."""
    return logs_root / now.strftime("%y%m%d")


class StructuredLogger:
    """Append-only writer for the daily text log and the operations log."""

    def __init__(
        self,
        log_dir: Path,
        *,
        host: str = "",
        user: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._clock = clock
        self._host = host
        self._user = user
        self._daily_dir = daily_logs_dir(Path(log_dir), clock())
        self._main_log_path = self._daily_dir / MAIN_LOG_NAME
        self._operations_log_path = self._daily_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            self._daily_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return whether the logger still writes to disk."""
        return self._enabled

    @property
    def main_log_path(self) -> Path:
        """Return the path of the daily text log."""
        return self._main_log_path

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the daily operations log."""
        return self._operations_log_path

    def append(self, message: str) -> None:
        """Append an already prefixed *message* to the daily text log."""
        stamp = self._clock().strftime("%Y-%m-%d %H:%M:%S.%f")[:-1]
        self._write(self._main_log_path, f"{stamp} {self._host} {self._user} {message}")

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Open an operation record which is written when the scope closes.

        A scope left without an explicit outcome is recorded as an error when
        an exception escaped it, and as a success otherwise.
        """
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{type(exc).__name__}: {exc}")
            raise
        finally:
            if scope.result is None:
                scope.success("completed")
            self._record(scope.to_dict())

    def _record(self, payload: Mapping[str, object]) -> None:
        self._write(self._operations_log_path, json.dumps(payload, sort_keys=True))

    def _write(self, path: Path, line: str) -> None:
        if not self._enabled:
            return
        try:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            self._enabled = False


class OperationScope:
    """Outcome holder for one logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        self._logger = logger
        self.command = command
        self.args = _sanitize(dict(args or {}))
        self.target = _sanitize(dict(target or {}))
        self.started_at = logger._clock()
        self._monotonic = time.monotonic()
        self.result: dict[str, object] | None = None

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._finish("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int | None = None,
        reports: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._finish(
            "warning",
            message,
            warnings=warnings,
            errors=errors,
            changed=changed,
            reports=reports,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        warnings: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._finish(
            "error",
            message,
            errors=list(errors) if errors else [message],
            warnings=warnings,
            rc=rc,
            context=context,
        )

    def _finish(self, status: str, message: str, **fields: object) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        for key, value in fields.items():
            if value is None:
                continue
            if isinstance(value, Mapping):
                result[key] = _sanitize(dict(value))
            elif isinstance(value, (list, tuple, set, frozenset)):
                result[key] = [_jsonable(item) for item in value]
            elif isinstance(value, Iterable) and not isinstance(value, str):
                result[key] = [_jsonable(item) for item in value]
            else:
                result[key] = _jsonable(value)
        self.result = result

    def to_dict(self) -> dict[str, object]:
        """Return the JSON record for this operation."""
        return {
            "command": self.command,
            "args": self.args,
            "target": self.target,
            "started": self.started_at.isoformat(),
            "duration_ms": int((time.monotonic() - self._monotonic) * 1000),
            "result": self.result,
            "context": {"ttp_version": __version__},
        }


def _sanitize(mapping: Mapping[str, object]) -> dict[str, object]:
    return {str(key): _jsonable(value) for key, value in mapping.items()}


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return _sanitize(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return str(value)


__all__ = [
    "MAIN_LOG_NAME",
    "OPERATIONS_LOG_NAME",
    "OperationScope",
    "StructuredLogger",
    "daily_logs_dir",
]
