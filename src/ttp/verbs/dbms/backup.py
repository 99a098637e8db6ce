# @(#) run a database backup
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --service=<name>        service name [${service}]
# @(-) --instance=<name>       DBMS instance name [${instance}]
# @(-) --database=<name>       database name [${database}]
# @(-) --[no]full              operate a full backup [${full}]
# @(-) --[no]diff              operate a differential backup [${diff}]
# @(-) --[no]compress          compress the outputed backup [${compress}]
# @(-) --output=<filename>     target filename [${output}]
#
# @(@) Note 1: remind that differential backup is the difference of the current state and the last full backup.
# @(@) Note 2: the default output filename is computed as:
# @(@)         <instance_backup_path>/<yymmdd>/<host>-<instance>-<database>-<yymmdd>-<hhmiss>-<mode>.backup
# @(@) Note 3: "dbms backup" provides an execution report according to the configured options.
"""Back up one database, or all the databases of a service."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb
from ...context import ExecutionContext
from ...dbms import Dbms
from ...reports import ExecutionReport
from ...resolver import database_exists, resolve_selector, select_databases

DEFAULTS: dict[str, object] = {
    "service": "",
    "instance": "",
    "database": "",
    "full": "no",
    "diff": "no",
    "compress": "no",
    "output": "DEFAULT",
}

app = typer.Typer(add_completion=False)


def do_backup(
    ctx: ExecutionContext,
    instance: str,
    databases: list[str],
    *,
    mode: str,
    compress: bool,
    output: str | None,
) -> None:
    dbms = Dbms(ctx, instance)
    report = ExecutionReport(ctx)
    count = 0
    for database in databases:
        ctx.info(f"backuping database '{instance}\\{database}'")
        result = dbms.backup_database(database, output=output, mode=mode, compress=compress)
        report.record(
            {
                "instance": instance,
                "database": database,
                "mode": mode,
                "output": str(result.output) if result.status and result.output else "",
                "compress": compress,
            },
            topic=(instance, database),
        )
        if result.status:
            count += 1
    summary = f"{count}/{len(databases)} backuped database(s)"
    if count == len(databases):
        ctx.info(f"success: {summary}")
    else:
        ctx.error(f"NOT OK: {summary}")


@app.command(add_help_option=False)
def backup(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    service: str | None = typer.Option(None, "--service", help="service name"),
    instance: str | None = typer.Option(None, "--instance", help="DBMS instance name"),
    database: str | None = typer.Option(None, "--database", help="database name"),
    full: bool = typer.Option(False, "--full/--nofull", help="operate a full backup"),
    diff: bool = typer.Option(False, "--diff/--nodiff", help="operate a differential backup"),
    compress: bool = typer.Option(False, "--compress/--nocompress", help="compress the outputed backup"),
    output: str | None = typer.Option(None, "--output", help="target filename"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found service='{service or ''}'")
    ctx.verbose(f"found instance='{instance or ''}'")
    ctx.verbose(f"found database='{database or ''}'")
    ctx.verbose(f"found full='{full}' diff='{diff}' compress='{compress}'")
    ctx.verbose(f"found output='{output or ''}'")

    resolved = resolve_selector(ctx, service, instance)
    databases: list[str] = []
    if resolved is not None:
        databases = select_databases(ctx, database, service)
        if not databases:
            ctx.error("'--database' option is required (or '--service'), but none is specified")
        for name in databases:
            if not database_exists(ctx, resolved.name, name):
                ctx.error(f"database '{name}' doesn't exist in the '{resolved.name}' instance")

    if full and diff:
        ctx.error("one of '--full' or '--diff' options must be specified, both found")
    elif not full and not diff:
        ctx.error("one of '--full' or '--diff' options must be specified, none found")

    if not output:
        ctx.verbose("'--output' option not specified, will use the computed default")
    elif len(databases) > 1:
        ctx.error("cowardly refuse to backup several databases in a single output file")

    if ctx.has_errors() or resolved is None:
        return
    do_backup(
        ctx,
        resolved.name,
        databases,
        mode="full" if full else "diff",
        compress=compress,
        output=output,
    )
