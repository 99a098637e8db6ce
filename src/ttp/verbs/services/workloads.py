# @(#) display the tasks of a workload
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --workload=<name>       display informations about the named workload [${workload}]
# @(-) --[no]commands          only list the commands for the named workload [${commands}]
# @(-) --[no]details           list the tasks details [${details}]
# @(-) --[no]hidden            also consider the tasks of hidden services [${hidden}]
#
# @(@) Tasks are displayed in their 'order', defaulting to the name of the service which defines them.
"""Display the commands or the detailed tasks of a workload across the node services."""
from __future__ import annotations

from collections.abc import Mapping

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...services import defined_worktasks

DEFAULTS: dict[str, object] = {
    "workload": "",
    "commands": "no",
    "details": "no",
    "hidden": "no",
}

app = typer.Typer(add_completion=False)


def list_commands(ctx: ExecutionContext, workload: str, hidden: bool) -> None:
    ctx.info(f"displaying workload commands defined in '{ctx.host}\\{workload}'...")
    count = 0
    for task in defined_worktasks(ctx, workload, hidden=hidden):
        commands = task.get("commands")
        if isinstance(commands, list):
            for command in commands:
                echo(ctx, f" {command}")
                count += 1
    ctx.info(f"{count} found defined command(s)")


def list_details(ctx: ExecutionContext, workload: str, hidden: bool) -> None:
    ctx.info(f"displaying detailed workload tasks defined in {ctx.host}\\{workload}...")
    tasks = defined_worktasks(ctx, workload, hidden=hidden)
    for task in tasks:
        print_task(ctx, task)
    ctx.info(f"{len(tasks)} found defined task(s)")


def print_task(ctx: ExecutionContext, task: Mapping[str, object]) -> None:
    """Print *task*, titled by its name or label."""
    title = task.get("name", task.get("label", "(unnamed)"))
    echo(ctx, f"+ {title}")
    if "name" in task and "label" in task:
        echo(ctx, f"  {task['label']}")
    for key in sorted(task):
        if key not in ("name", "label"):
            print_task_data(ctx, key, task[key], prefix="  ")


def print_task_data(ctx: ExecutionContext, key: str, value: object, *, prefix: str, with_key: bool = True) -> None:
    if isinstance(value, list):
        echo(ctx, f"{prefix}{key}:")
        for item in value:
            print_task_data(ctx, key, item, prefix=prefix + "  ", with_key=False)
    elif isinstance(value, Mapping):
        echo(ctx, f"{prefix}{key}:")
        for sub_key, item in value.items():
            print_task_data(ctx, str(sub_key), item, prefix=prefix + "  ")
    elif with_key:
        echo(ctx, f"{prefix}{key}: {value}")
    else:
        echo(ctx, f"{prefix}{value}")


@app.command(add_help_option=False)
def workloads(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    workload: str | None = typer.Option(None, "--workload", help="the named workload"),
    commands: bool = typer.Option(False, "--commands/--nocommands", help="only list the commands"),
    details: bool = typer.Option(False, "--details/--nodetails", help="list the tasks details"),
    hidden: bool = typer.Option(False, "--hidden/--nohidden", help="also consider hidden services"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found workload='{workload or ''}'")
    ctx.verbose(f"found commands='{commands}' details='{details}' hidden='{hidden}'")

    if (commands or details) and not workload:
        ctx.error("a workload is required, but not found")
    if workload and not (commands or details):
        ctx.warn("no action has been requested, exiting gracefully")

    if ctx.has_errors() or not workload:
        return
    if commands:
        list_commands(ctx, workload, hidden)
    if details:
        list_details(ctx, workload, hidden)
