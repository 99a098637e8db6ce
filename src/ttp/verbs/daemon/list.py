# @(#) list the daemons configurations
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --[no]json              display the available JSON configuration files [${json}]
"""List the daemon configuration files of the site."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ._common import daemons_dirs

DEFAULTS: dict[str, object] = {
    "json": "no",
}

app = typer.Typer(add_completion=False)


def list_json(ctx: ExecutionContext) -> None:
    ctx.info("displaying available JSON configuration files...")
    count = 0
    for directory in daemons_dirs(ctx):
        if not directory.is_dir():
            ctx.verbose(f"'{directory}': directory not found")
            continue
        for path in sorted(directory.glob("*.json")):
            echo(ctx, f"  {path}")
            count += 1
    ctx.info(f"found {count} JSON configuration files")


@app.command(add_help_option=False)
def list_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    json: bool = typer.Option(False, "--json/--nojson", help="display the available JSON configuration files"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found json='{json}'")
    if json:
        list_json(ctx)
