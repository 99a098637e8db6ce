# @(#) list various DBMS objects
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --service=<name>        acts on the named service [${service}]
# @(-) --[no]listinstance      list the DBMS instance of the service [${listinstance}]
# @(-) --instance=<name>       acts on the named instance [${instance}]
# @(-) --[no]listdb            list the databases of the instance [${listdb}]
# @(-) --database=<name>       acts on the named database [${database}]
# @(-) --[no]listtables        list the tables of the database [${listtables}]
#
# @(@) Note: '--service' and '--instance' options are mutually exclusive.
"""List the instance of a service, the databases of an instance, or the tables of a database."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...dbms import Dbms
from ...resolver import ResolvedInstance, database_exists, resolve_selector

DEFAULTS: dict[str, object] = {
    "service": "",
    "listinstance": "no",
    "instance": "",
    "listdb": "no",
    "database": "",
    "listtables": "no",
}

app = typer.Typer(add_completion=False)


def list_instance(ctx: ExecutionContext, service: str, instance: str) -> None:
    ctx.info(f"displaying instance in '{service}' service...")
    echo(ctx, f" {instance}")
    ctx.info("1 found instance")


def list_databases(ctx: ExecutionContext, instance: str) -> None:
    ctx.info(f"displaying databases in '{instance}' instance...")
    databases = Dbms(ctx, instance).get_live_databases()
    for name in databases:
        echo(ctx, f" {name}")
    ctx.info(f"{len(databases)} found database(s)")


def list_tables(ctx: ExecutionContext, instance: str, database: str) -> None:
    ctx.info(f"displaying tables in '{instance}\\{database}' database...")
    tables = Dbms(ctx, instance).get_database_tables(database)
    for name in tables:
        echo(ctx, f" {name}")
    ctx.info(f"{len(tables)} found table(s)")


def _check_database(ctx: ExecutionContext, resolved: ResolvedInstance, service: str | None, database: str) -> None:
    if service and ctx.service is not None and database not in ctx.service.definition.databases:
        ctx.error(f"database '{database}' in not defined in '{service}' service")
    elif not database_exists(ctx, resolved.name, database):
        ctx.error(f"database '{database}' doesn't exist in '{resolved.name}' instance")


@app.command(add_help_option=False)
def list_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    service: str | None = typer.Option(None, "--service", help="acts on the named service"),
    listinstance: bool = typer.Option(False, "--listinstance/--nolistinstance", help="list the DBMS instance"),
    instance: str | None = typer.Option(None, "--instance", help="acts on the named instance"),
    listdb: bool = typer.Option(False, "--listdb/--nolistdb", help="list the databases of the instance"),
    database: str | None = typer.Option(None, "--database", help="acts on the named database"),
    listtables: bool = typer.Option(False, "--listtables/--nolisttables", help="list the tables of the database"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found service='{service or ''}' listinstance='{listinstance}'")
    ctx.verbose(f"found instance='{instance or ''}' listdb='{listdb}'")
    ctx.verbose(f"found database='{database or ''}' listtables='{listtables}'")

    resolved = resolve_selector(ctx, service, instance)
    if resolved is not None and database:
        _check_database(ctx, resolved, service, database)
    if listinstance and not service:
        ctx.error("'--listinstance' option requires a '--service'")
    if listtables and not database:
        ctx.error("'--listtables' option requires a '--database'")
    if not (listinstance or listdb or listtables):
        ctx.warn("no action has been requested, exiting gracefully")

    if ctx.has_errors() or resolved is None:
        return
    if listinstance and service:
        list_instance(ctx, service, resolved.name)
    if listdb:
        list_databases(ctx, resolved.name)
    if listtables and database:
        list_tables(ctx, resolved.name, database)
