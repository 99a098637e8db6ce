# @(#) stop a TTP daemon
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --json=<filename>       the JSON file which characterizes this daemon [${json}]
# @(-) --bname=<name>          the JSON file basename [${bname}]
# @(-) --port=<port>           the port number to address [${port}]
# @(-) --[no]ignore            ignore the return code if the daemon was not active [${ignore}]
# @(-) --[no]wait              wait for actual termination [${wait}]
# @(-) --timeout=<timeout>     timeout when waiting for termination [${timeout}]
# @(-) --sleep=<sleep>         sleep for seconds before exiting [${sleep}]
#
# @(@) The Tools Project is able to manage any daemons with these very same verbs.
"""Request a running daemon to terminate."""
from __future__ import annotations

import time
from collections.abc import Callable

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ._common import request, select_port

DEFAULTS: dict[str, object] = {
    "json": "",
    "bname": "",
    "port": "",
    "ignore": "yes",
    "wait": "yes",
    "timeout": 60,
    "sleep": 0,
}

app = typer.Typer(add_completion=False)

sleep: Callable[[float], None] = time.sleep
monotonic: Callable[[], float] = time.monotonic


def wait_termination(ctx: ExecutionContext, port: int, timeout: int) -> bool:
    """Poll the daemon status until it stops answering; ``False`` on timeout."""
    ctx.info("waiting for actual termination...")
    deadline = monotonic() + timeout
    while request(ctx, port, "status") is not None:
        if monotonic() >= deadline:
            return False
        sleep(1)
    return True


def do_stop(ctx: ExecutionContext, port: int, *, ignore: bool, wait: bool, timeout: int, pause: int) -> None:
    ctx.info("requesting the daemon for termination...")
    if ctx.dummy_run:
        ctx.dummy(f"sending 'terminate' to port {port}")
        ctx.info("success")
        return
    answer = request(ctx, port, "terminate")
    if answer is None:
        if ignore:
            ctx.info("no answer from the daemon")
            ctx.info("success")
        else:
            ctx.warn("no answer from the daemon")
            ctx.error("NOT OK")
        return
    for line in answer.splitlines():
        echo(ctx, line)
    terminated = wait_termination(ctx, port, timeout) if wait else True
    if pause > 0:
        ctx.info(f"sleeping {pause} sec.")
        sleep(pause)
    if terminated:
        ctx.info("success")
    else:
        ctx.error("timeout while waiting for daemon termination")


@app.command(add_help_option=False)
def stop(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    json: str | None = typer.Option(None, "--json", help="the JSON file which characterizes this daemon"),
    bname: str | None = typer.Option(None, "--bname", help="the JSON file basename"),
    port: int | None = typer.Option(None, "--port", help="the port number to address"),
    ignore: bool = typer.Option(True, "--ignore/--noignore", help="ignore a not active daemon"),
    wait: bool = typer.Option(True, "--wait/--nowait", help="wait for actual termination"),
    timeout: int = typer.Option(60, "--timeout", help="timeout when waiting for termination"),
    pause: int = typer.Option(0, "--sleep", help="sleep for seconds before exiting"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found json='{json or ''}' bname='{bname or ''}' port='{'' if port is None else port}'")
    ctx.verbose(f"found ignore='{ignore}' wait='{wait}' timeout='{timeout}' sleep='{pause}'")

    target = select_port(ctx, json=json, bname=bname, port=port)
    if timeout < 0:
        ctx.error(f"timeout must be a positive number of seconds, found {timeout}")

    if ctx.has_errors() or target is None:
        return
    do_stop(ctx, target, ignore=ignore, wait=wait, timeout=timeout, pause=pause)
