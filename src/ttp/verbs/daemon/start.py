# @(#) start a TTP daemon
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --json=<filename>       the JSON file which characterizes this daemon [${json}]
# @(-) --bname=<name>          the JSON file basename [${bname}]
#
# @(@) The Tools Project is able to manage any daemons with these very same verbs.
# @(@) Each separate daemon is characterized by its own JSON properties which uniquely identifies it from the TTP point of view.
# @(@) The daemon program is the 'execPath' of the configuration when set, else a bare daemon answering the built-in commands.
"""Start a daemon as a detached background process."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb
from ...context import ExecutionContext
from ._common import configured_port, find_daemon_json, load_daemon_config

DEFAULTS: dict[str, object] = {
    "json": "",
    "bname": "",
}

app = typer.Typer(add_completion=False)


def daemon_argv(config: dict[str, object], path: Path) -> list[str]:
    """Return the command line which runs the daemon configured at *path*."""
    program = config.get("execPath")
    if program:
        return [sys.executable, str(program), str(path)]
    return [sys.executable, "-m", "ttp.daemon", str(path)]


def do_start(ctx: ExecutionContext, path: Path) -> None:
    ctx.info(f"starting the daemon from '{path}'...")
    config = load_daemon_config(ctx, path)
    if config is None or configured_port(ctx, config) is None:
        ctx.error(f"unable to load the '{path}' specified configuration file")
        return
    argv = daemon_argv(config, path.resolve())
    ctx.verbose(f"running {' '.join(argv)}")
    if ctx.dummy_run:
        ctx.dummy(f"spawning {' '.join(argv)}")
        ctx.info("success")
        return
    try:
        process = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            env=dict(ctx.env),
        )
    except OSError as exc:
        ctx.error(f"unable to spawn the daemon: {exc.strerror or exc}")
        ctx.error("NOT OK")
        return
    ctx.log(f"daemon spawned with pid {process.pid}")
    ctx.info("success")


@app.command(add_help_option=False)
def start(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    json: str | None = typer.Option(None, "--json", help="the JSON file which characterizes this daemon"),
    bname: str | None = typer.Option(None, "--bname", help="the JSON file basename"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found json='{json or ''}'")
    ctx.verbose(f"found bname='{bname or ''}'")

    path: Path | None = None
    if json and bname:
        ctx.error("one of '--json' or '--bname' options must be specified, several were found")
    elif not json and not bname:
        ctx.error("one of '--json' or '--bname' options must be specified, none found")
    elif bname:
        path = find_daemon_json(ctx, bname)
    elif json:
        path = Path(json)
        if not path.is_file():
            ctx.error(f"{json}: file not found or not readable")

    if ctx.has_errors() or path is None:
        return
    do_start(ctx, path)
