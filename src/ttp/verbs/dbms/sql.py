# @(#) execute a SQL command or a script on a DBMS instance
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --instance=<name>       acts on the named instance [${instance}]
# @(-) --[no]stdin             whether the sql command has to be read from stdin [${stdin}]
# @(-) --script=<filename>     the sql script filename [${script}]
# @(-) --command=<command>     the sql command as a string [${command}]
# @(-) --[no]tabular           format the output as tabular data [${tabular}]
# @(-) --[no]multiple          whether we expect several result sets [${multiple}]
# @(-) --json=<filename>       also write the result as JSON into this file [${json}]
# @(-) --[no]columns           print the column names of each result set [${columns}]
#
# @(@) The provided SQL script may or may not have a displayable result. Nonetheless, this verb will always display all the script output.
# @(@) Use Ctrl+D in a Unix terminal (Ctrl+Z in a Windows command prompt) to terminate the stdin stream.
# @(@) In dummy mode, the SQL batch is only displayed, never executed, whatever its content.
"""Execute an SQL batch read from stdin, from a script or from the command line."""
from __future__ import annotations

from pathlib import Path

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...dbms import Dbms, SqlResult
from ...resolver import check_instance_name

DEFAULTS: dict[str, object] = {
    "instance": "",
    "stdin": "no",
    "script": "",
    "command": "",
    "tabular": "no",
    "multiple": "no",
    "json": "",
    "columns": "no",
}

app = typer.Typer(add_completion=False)


def report_result(ctx: ExecutionContext, result: SqlResult, *, tabular: bool) -> None:
    """Print the untabulated output of *result* and the final status."""
    if result.ok and result.result and not tabular:
        has_rows = False
        for item in result.result:
            if isinstance(item, (dict, list)):
                has_rows = True
            else:
                echo(ctx, str(item))
        if has_rows:
            ctx.warn("result contains data, should have been displayed with '--tabular' option")
    if result.ok:
        ctx.info("success")
    else:
        ctx.error("NOT OK")


def read_sql(ctx: ExecutionContext, *, stdin: bool, script: str | None, command: str | None) -> str | None:
    """Return the batch to execute, ``None`` when the script cannot be read."""
    if stdin:
        sql = typer.get_text_stream("stdin").read().rstrip("\n")
        ctx.verbose(f"executing '{sql}' from stdin")
        return sql
    if script:
        ctx.verbose(f"executing from '{script}'")
        try:
            sql = Path(script).read_text(encoding="utf-8")
        except OSError as exc:
            ctx.error(f"{script}: unable to read the file ({exc.strerror or exc})")
            return None
        except UnicodeDecodeError as exc:
            ctx.error(f"{script}: not a UTF-8 encoded file ({exc.reason} at byte {exc.start})")
            return None
        ctx.verbose(f"sql='{sql}'")
        return sql
    ctx.verbose(f"executing command='{command or ''}'")
    return command or ""


@app.command(add_help_option=False)
def sql(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    instance: str | None = typer.Option(None, "--instance", help="acts on the named instance"),
    stdin: bool = typer.Option(False, "--stdin/--nostdin", help="read the sql command from stdin"),
    script: str | None = typer.Option(None, "--script", help="the sql script filename"),
    command: str | None = typer.Option(None, "--command", help="the sql command as a string"),
    tabular: bool = typer.Option(False, "--tabular/--notabular", help="format the output as tabular data"),
    multiple: bool = typer.Option(False, "--multiple/--nomultiple", help="expect several result sets"),
    json_path: str | None = typer.Option(None, "--json", help="also write the result as JSON into this file"),
    columns: bool = typer.Option(False, "--columns/--nocolumns", help="print the column names"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found instance='{instance or ''}'")
    ctx.verbose(f"found stdin='{stdin}' script='{script or ''}' command='{command or ''}'")
    ctx.verbose(f"found tabular='{tabular}' multiple='{multiple}' columns='{columns}'")
    ctx.verbose(f"found json='{json_path or ''}'")

    resolved = check_instance_name(ctx, instance)
    count = sum(1 for given in (stdin, bool(script), bool(command)) if given)
    if count != 1:
        ctx.error("either '--stdin' or '--script' or '--command' option must be specified")
    elif script and not Path(script).is_file():
        ctx.error(f"{script}: file is not found or not readable")

    if ctx.has_errors() or resolved is None:
        return
    sql_text = read_sql(ctx, stdin=stdin, script=script, command=command)
    if sql_text is None:
        return
    result = Dbms(ctx, resolved).exec_sql_command(
        sql_text,
        tabular=tabular,
        multiple=multiple,
        json_path=json_path,
        columns=columns,
    )
    report_result(ctx, result, tabular=tabular)
