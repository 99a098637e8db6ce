# @(#) restore a database
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --instance=<name>       DBMS instance name [${instance}]
# @(-) --database=<name>       target database name [${database}]
# @(-) --full=<filename>       restore from this full backup [${full}]
# @(-) --diff=<filename>       restore with this differential backup [${diff}]
# @(-) --[no]verifyonly        only check the backup restorability [${verifyonly}]
#
# @(@) Note 1: you must at least provide a full backup to restore, and may also provide an additional differential backup file.
# @(@) Note 2: target database is mandatory unless you only want a backup restorability check.
# @(@) Note 3: "dbms restore" provides an execution report according to the configured options.
"""Restore a full backup, optionally followed by a differential one."""
from __future__ import annotations

from pathlib import Path

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb
from ...context import ExecutionContext
from ...dbms import Dbms
from ...reports import ExecutionReport
from ...resolver import check_instance_name

DEFAULTS: dict[str, object] = {
    "instance": "",
    "database": "",
    "full": "",
    "diff": "",
    "verifyonly": "no",
}

app = typer.Typer(add_completion=False)


def do_restore(
    ctx: ExecutionContext,
    instance: str,
    database: str | None,
    full: str,
    diff: str | None,
    verifyonly: bool,
) -> None:
    with_diff = ", with additional diff" if diff else ""
    if verifyonly:
        ctx.info(f"verifying the restorability of '{full}'{with_diff}...")
    else:
        ctx.info(f"restoring database '{ctx.host}\\{instance}\\{database}' from '{full}'{with_diff}...")
    ok = Dbms(ctx, instance).restore_database(database, full, diff=diff, verifyonly=verifyonly)
    if not verifyonly:
        data: dict[str, object] = {
            "instance": instance,
            "database": database,
            "full": full,
            "mode": "diff" if diff else "full",
        }
        if diff:
            data["diff"] = diff
        ExecutionReport(ctx).record(data, topic=(instance, database or ""))
    if ok:
        ctx.info("success")


@app.command(add_help_option=False)
def restore(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    instance: str | None = typer.Option(None, "--instance", help="DBMS instance name"),
    database: str | None = typer.Option(None, "--database", help="target database name"),
    full: str | None = typer.Option(None, "--full", help="restore from this full backup"),
    diff: str | None = typer.Option(None, "--diff", help="restore with this differential backup"),
    verifyonly: bool = typer.Option(False, "--verifyonly/--noverifyonly", help="only check the backup restorability"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found instance='{instance or ''}'")
    ctx.verbose(f"found database='{database or ''}'")
    ctx.verbose(f"found full='{full or ''}'")
    ctx.verbose(f"found diff='{diff or ''}'")
    ctx.verbose(f"found verifyonly='{verifyonly}'")

    resolved = check_instance_name(ctx, instance)
    if not database and not verifyonly:
        ctx.error("'--database' option is mandatory, but is not specified")
    if not full:
        ctx.error("'--full' option is mandatory, but is not specified")
    if diff and not Path(diff).is_file():
        ctx.error(f"{diff}: file not found or not readable")

    if ctx.has_errors() or resolved is None or not full:
        return
    do_restore(ctx, resolved, database, full, diff, verifyonly)
