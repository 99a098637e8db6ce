"""Execution reports of mutating verbs.

A report is one JSON document per record, written under the site
``toops.executionReports.dir`` directory, plus an optional hand-off to a
message-bus publisher under the topic
``<host>/executionReport/<command>/<verb>/<parts...>``. The publisher receives
the record without the fields excluded for the bus.
"""
from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import ExecutionContext

Publisher = Callable[[str, Mapping[str, object]], None]

DEFAULT_BUS_EXCLUDES = ("instance", "database", "cmdline", "command", "verb", "host")
STAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class ReportError(RuntimeError):
    """Raised when an execution report cannot be written."""


def write_json_atomic(path: Path, payload: Mapping[str, object]) -> None:
    """Atomically persist *payload* as JSON into *path*."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ReportError(f"Failed to prepare report directory {path.parent}: {exc}") from exc
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=False, default=str)
            handle.write("\n")
        os.replace(tmp_path, path)
    except OSError as exc:
        raise ReportError(f"Failed to write report {path}: {exc}") from exc
    finally:
        tmp_path.unlink(missing_ok=True)


class ExecutionReport:
    """Records execution reports for the current run."""

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        directory: Path | None = None,
        publisher: Publisher | None = None,
        excludes: Iterable[str] | None = None,
    ) -> None:
        self.ctx = ctx
        site_config = ctx.config.site_config if ctx.config is not None else None
        if directory is None and site_config is not None:
            directory = site_config.execution_reports_dir
        if excludes is None:
            configured = site_config.execution_reports_excludes if site_config is not None else ()
            excludes = configured or DEFAULT_BUS_EXCLUDES
        self.directory = directory
        self.publisher = publisher
        self.excludes = tuple(excludes)

    def topic(self, *parts: str) -> str:
        """Return the bus topic of a report about *parts*."""
        base = [self.ctx.host, "executionReport", self.ctx.command or "", self.ctx.verb or ""]
        return "/".join([*base, *parts])

    def record(self, data: Mapping[str, object], *, topic: Iterable[str] = ()) -> dict[str, object] | None:
        """Complete *data* with the run fields, then write and publish it.

        Returns the full record, or ``None`` when writing failed.
        """
        ctx = self.ctx
        record = dict(data)
        started = ctx.started or ctx.clock()
        now = ctx.clock()
        record.update(
            {
                "cmdline": " ".join([ctx.command or "", ctx.verb or "", *ctx.args]).strip(),
                "command": ctx.command,
                "verb": ctx.verb,
                "host": ctx.host,
                "code": ctx.errors,
                "started": started.strftime(STAMP_FORMAT),
                "ended": now.strftime(STAMP_FORMAT),
                "dummy": ctx.dummy_run,
            }
        )
        if self.directory is not None:
            path = self.directory / f"{now.strftime('%Y%m%d%H%M%S%f')}.json"
            if ctx.dummy_run:
                ctx.dummy(f"writing execution report into '{path}'")
            else:
                try:
                    write_json_atomic(path, record)
                except ReportError as exc:
                    ctx.error(str(exc))
                    return None
                ctx.verbose(f"execution report written into '{path}'")
        else:
            ctx.verbose("no execution reports directory configured, report not written")
        if self.publisher is not None:
            payload = {key: value for key, value in record.items() if key not in self.excludes}
            self.publisher(self.topic(*topic), payload)
        return record


__all__ = ["DEFAULT_BUS_EXCLUDES", "ExecutionReport", "Publisher", "ReportError", "write_json_atomic"]
