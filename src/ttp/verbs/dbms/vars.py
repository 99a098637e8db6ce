# @(#) display internal DBMS variables
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --[no]backupsRoot       display the root (non daily) of the DBMS backup path [${backupsRoot}]
# @(-) --[no]backupsDir        display the (maybe daily) DBMS backup path [${backupsDir}]
# @(-) --[no]archivesRoot      display the root (non daily) of the DBMS archive path [${archivesRoot}]
# @(-) --[no]archivesDir       display the (maybe daily) DBMS archive path [${archivesDir}]
"""Display the DBMS paths of the node configuration."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext

DEFAULTS: dict[str, object] = {
    "backupsRoot": "no",
    "backupsDir": "no",
    "archivesRoot": "no",
    "archivesDir": "no",
}

app = typer.Typer(add_completion=False)


def dbms_var(ctx: ExecutionContext, key: str) -> object | None:
    """Return ``DBMS.<key>`` from the merged configuration, warning when undefined."""
    value = ctx.config.var(("DBMS", key)) if ctx.config is not None else None
    if value is None:
        ctx.warn(f"'{key}' is not defined in toops.json nor in host configuration")
    return value


def display_var(ctx: ExecutionContext, key: str) -> None:
    value = dbms_var(ctx, key)
    if value is None:
        return
    line = f"{key}: {value}"
    ctx.verbose(f"returning '{line}'")
    echo(ctx, f" {line}")


@app.command(add_help_option=False)
def vars_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    backups_root: bool = typer.Option(False, "--backupsRoot/--nobackupsRoot", help="display the backups root"),
    backups_dir: bool = typer.Option(False, "--backupsDir/--nobackupsDir", help="display the backups directory"),
    archives_root: bool = typer.Option(False, "--archivesRoot/--noarchivesRoot", help="display the archives root"),
    archives_dir: bool = typer.Option(False, "--archivesDir/--noarchivesDir", help="display the archives directory"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    requested = {
        "backupsRoot": backups_root,
        "backupsDir": backups_dir,
        "archivesRoot": archives_root,
        "archivesDir": archives_dir,
    }
    for key, wanted in requested.items():
        ctx.verbose(f"found {key}='{wanted}'")
    for key, wanted in requested.items():
        if wanted:
            display_var(ctx, key)
