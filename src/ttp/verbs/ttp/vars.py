# @(#) display internal TTP variables
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --[no]siteRoot          display the site-defined root path [${siteRoot}]
# @(-) --[no]logsRoot          display the TTP logs root (not daily) [${logsRoot}]
# @(-) --[no]logsDir           display the current TTP logs directory [${logsDir}]
"""Display the site root and the logs directories of the run."""
from __future__ import annotations

from pathlib import Path

import typer

from ... import paths
from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...logging import daily_logs_dir

DEFAULTS: dict[str, object] = {
    "siteRoot": "no",
    "logsRoot": "no",
    "logsDir": "no",
}

app = typer.Typer(add_completion=False)


def display(ctx: ExecutionContext, key: str, value: object) -> None:
    line = f"{key}: {'' if value is None else value}"
    ctx.verbose(f"returning '{line}'")
    echo(ctx, f" {line}")


def logs_root(ctx: ExecutionContext) -> Path:
    if ctx.config is not None:
        return ctx.config.site_config.logs_dir
    return paths.default_logs_root()


@app.command(add_help_option=False)
def vars_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    site_root: bool = typer.Option(False, "--siteRoot/--nositeRoot", help="display the site root path"),
    logs_root_: bool = typer.Option(False, "--logsRoot/--nologsRoot", help="display the logs root"),
    logs_dir: bool = typer.Option(False, "--logsDir/--nologsDir", help="display the daily logs directory"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found siteRoot='{site_root}' logsRoot='{logs_root_}' logsDir='{logs_dir}'")
    if site_root:
        display(ctx, "siteRoot", ctx.config.site_root if ctx.config is not None else paths.site_root(ctx.env))
    if logs_root_:
        display(ctx, "logsRoot", logs_root(ctx))
    if logs_dir:
        display(ctx, "logsDir", daily_logs_dir(logs_root(ctx), ctx.clock()))
