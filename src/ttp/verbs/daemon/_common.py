"""Helpers shared by the ``daemon`` verbs."""
from __future__ import annotations

from pathlib import Path

from ... import paths
from ...context import ExecutionContext
from ...daemon import DaemonError, evaluate_daemon_config, read_daemon_config, send_command


def daemons_dirs(ctx: ExecutionContext) -> list[Path]:
    """Return the directories holding daemon configurations, site first."""
    site = ctx.config.site_root if ctx.config is not None else paths.site_root(ctx.env)
    roots = ctx.config.roots if ctx.config is not None else paths.search_roots(ctx.env)
    dirs: list[Path] = []
    if site is not None:
        dirs.append(site / paths.DAEMONS_SUBDIR)
    dirs.extend(root / paths.DAEMONS_SUBDIR for root in roots)
    return dirs


def find_daemon_json(ctx: ExecutionContext, bname: str) -> Path | None:
    """Return the configuration file named by *bname*, reporting an error when not found."""
    site = ctx.config.site_root if ctx.config is not None else paths.site_root(ctx.env)
    roots = ctx.config.roots if ctx.config is not None else paths.search_roots(ctx.env)
    found = paths.first_existing(paths.daemon_file_candidates(bname, site, roots))
    if found is None:
        ctx.error(f"unable to find a suitable daemon JSON configuration file for '{bname}'")
    else:
        ctx.verbose(f"found '{found}' for '{bname}'")
    return found


def load_daemon_config(ctx: ExecutionContext, path: Path) -> dict[str, object] | None:
    """Return the evaluated configuration at *path*, ``None`` when unusable."""
    raw = read_daemon_config(ctx, path)
    if raw is None:
        ctx.error(f"unable to load a suitable daemon configuration for json='{path}'")
        return None
    return evaluate_daemon_config(ctx, raw)


def configured_port(ctx: ExecutionContext, config: dict[str, object]) -> int | None:
    port = config.get("listeningPort")
    if port is None or isinstance(port, bool) or not isinstance(port, (int, str)) or not str(port).isdigit():
        ctx.error("daemon configuration must define a 'listeningPort' value, not found")
        return None
    return int(port)


def select_port(
    ctx: ExecutionContext,
    *,
    json: str | None,
    bname: str | None,
    port: int | None,
) -> int | None:
    """Resolve exactly one of *json*, *bname* or *port* to a listening port."""
    count = sum(1 for given in (json, bname, port is not None) if given)
    if count == 0:
        ctx.error("one of '--json' or '--bname' or '--port' options must be specified, none found")
        return None
    if count > 1:
        ctx.error("one of '--json' or '--bname' or '--port' options must be specified, several were found")
        return None
    if port is not None:
        if port <= 0:
            ctx.error("when specified, addressed port must be greater than zero")
            return None
        return port
    path = Path(json) if json else find_daemon_json(ctx, bname or "")
    if path is None:
        return None
    config = load_daemon_config(ctx, path)
    if config is None:
        return None
    return configured_port(ctx, config)


def request(ctx: ExecutionContext, port: int, command: str) -> str | None:
    """Send *command* to the daemon on *port*; ``None`` when it doesn't answer."""
    ctx.verbose(f"sending '{command}' to port {port}")
    try:
        answer = send_command(port, command)
    except DaemonError as exc:
        ctx.verbose(str(exc))
        return None
    ctx.log(f"received '{answer.strip()}'")
    return answer or None


__all__ = [
    "configured_port",
    "daemons_dirs",
    "find_daemon_json",
    "load_daemon_config",
    "request",
    "select_port",
]
