# @(#) display a configuration variable on stdout
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --service=<name>        display informations about the named service [${service}]
# @(-) --key=<name[,...]>      a comma-separated list of keys to reach the desired value, may be specified several times [${key}]
"""Display a value of the configuration of a service."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo_value
from ...context import ExecutionContext
from ...resolver import check_service_name

DEFAULTS: dict[str, object] = {
    "service": "",
    "key": "",
}

app = typer.Typer(add_completion=False)


def split_keys(values: list[str]) -> list[str]:
    """Return the keys of repeated and comma-separated ``--key`` values."""
    return [key.strip() for value in values for key in value.split(",") if key.strip()]


def display_var(ctx: ExecutionContext, keys: list[str]) -> None:
    label = ",".join(keys)
    ctx.info(f"displaying '{label}' variable...")
    value = ctx.config.var(keys) if ctx.config is not None else None
    echo_value(ctx, label, value)
    if ctx.has_errors():
        ctx.error("NOT OK")
    else:
        ctx.info("done")


@app.command(add_help_option=False)
def vars_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    service: str | None = typer.Option(None, "--service", help="the named service"),
    key: list[str] = typer.Option([], "--key", help="comma-separated keys, may be repeated"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    keys = split_keys(list(key))
    ctx.verbose(f"found service='{service or ''}'")
    ctx.verbose(f"found keys='{','.join(keys)}'")

    if not service:
        ctx.error("a service is required, but not found")
    else:
        check_service_name(ctx, service)
    if not keys:
        ctx.error("at least a key is required, but none found")

    if ctx.has_errors():
        return
    display_var(ctx, keys)
