"""Daemon framework: a single-threaded TCP command listener.

A daemon is described by a JSON document holding at least ``listeningPort``.
The owning loop alternates between a non-blocking :meth:`Daemon.listen` poll,
its own periodic work and a sleep of ``listeningInterval`` seconds. Each
connection carries one whitespace-separated request line and receives one
answer, terminated by a newline, after which the daemon shuts its write side.

``help``, ``status`` and ``terminate`` are always answered by the framework;
other commands go to the table given at initialisation. Run a bare daemon
answering only the built-ins with::

    python -m ttp.daemon /path/to/daemon.json
"""
from __future__ import annotations

import signal
import socket
import sys
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import FrameType
from typing import cast

from .config import ConfigError, Document, load_configuration, read_document
from .context import ExecutionContext, RunExit
from .evaluation import evaluate
from .reports import Publisher

BUFSIZE = 4096
LISTEN_BACKLOG = 5
DEFAULT_LISTEN_INTERVAL = 5
MIN_LISTEN_INTERVAL = 1
DEFAULT_ADVERTISE_INTERVAL = 60
MIN_ADVERTISE_INTERVAL = 10
RECV_TIMEOUT = 10.0
CLIENT_TIMEOUT = 5.0
BUILTIN_COMMANDS = ("help", "status", "terminate")
OFFLINE = "offline"
STARTED_FORMAT = "%Y-%m-%d %H:%M:%S"


class DaemonError(RuntimeError):
    """Raised by the socket helpers."""


@dataclass
class Request:
    """One request received by a daemon."""

    command: str
    args: list[str] = field(default_factory=list)
    peer: tuple[str, int] = ("", 0)
    raw: str = ""
    answer: str | None = None


CommandHandler = Callable[[Request], str]


def open_listening_socket(port: int, host: str = "0.0.0.0") -> socket.socket:
    """Return a non-blocking socket listening on *host*:*port*."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
        sock.setblocking(False)
    except OSError as exc:
        sock.close()
        raise DaemonError(f"unable to create a listening socket on port {port}: {exc.strerror or exc}") from exc
    return sock


def send_command(port: int, command: str, host: str = "localhost", timeout: float = CLIENT_TIMEOUT) -> str:
    """Send *command* to the daemon listening on *host*:*port* and return its answer."""
    chunks: list[bytes] = []
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            sock.sendall(command.encode("utf-8"))
            sock.shutdown(socket.SHUT_WR)
            while True:
                chunk = sock.recv(BUFSIZE)
                if not chunk:
                    break
                chunks.append(chunk)
    except OSError as exc:
        raise DaemonError(f"unable to connect to {host}:{port}: {exc.strerror or exc}") from exc
    return b"".join(chunks).decode("utf-8", errors="replace")


def answer_is_ok(answer: str) -> bool:
    """Return whether *answer* holds the ``OK`` acknowledgement."""
    return any(line.strip() == "OK" or line.rstrip().endswith(" OK") for line in answer.splitlines())


def _interval(ctx: ExecutionContext, config: Mapping[str, object], keys: Sequence[str], default: int, minimum: int) -> float:
    for key in keys:
        if key not in config:
            continue
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            ctx.error(f"daemon configuration '{key}' must be a number, found '{value}'")
            return default
        if value < minimum:
            ctx.verbose(f"defined {key}={value} less than minimum accepted {minimum}, ignored")
            return default
        return value
    return default


class Daemon:
    """A listening daemon and its run state."""

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        name: str,
        json_path: Path,
        raw: Document,
        config: Document,
        sock: socket.socket,
        commands: Mapping[str, CommandHandler] | None = None,
        listen_interval: float = DEFAULT_LISTEN_INTERVAL,
        advertise_interval: float = DEFAULT_ADVERTISE_INTERVAL,
        publisher: Publisher | None = None,
    ) -> None:
        self.ctx = ctx
        self.name = name
        self.json_path = json_path
        self.raw = raw
        self.config = config
        self.commands = dict(commands or {})
        self.listen_interval = listen_interval
        self.advertise_interval = advertise_interval
        self.publisher = publisher
        self.started_at = ctx.clock()
        self.terminating = False
        self.listening_port = int(sock.getsockname()[1])
        self.sleep: Callable[[float], None] = time.sleep
        self._socket: socket.socket | None = sock
        self._last_advertised: float | None = None

    @classmethod
    def init(
        cls,
        ctx: ExecutionContext,
        json_path: Path | str,
        commands: Mapping[str, CommandHandler] | None = None,
        *,
        install_sigint: bool = True,
        publisher: Publisher | None = None,
    ) -> Daemon | None:
        """Read the daemon configuration and start listening.

        Returns ``None``, with the errors reported, when the configuration is
        unusable or the socket cannot be bound.
        """
        path = Path(json_path)
        name = path.stem
        if ctx.command is None and ctx.daemon is None:
            ctx.daemon = name
        if ctx.config is None:
            load_configuration(ctx)
        raw = read_daemon_config(ctx, path)
        config = evaluate_daemon_config(ctx, raw) if raw else {}
        port = config.get("listeningPort")
        if raw and port is None:
            ctx.error("daemon configuration must define a 'listeningPort' value, not found")
        elif port is not None and (isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535):
            ctx.error(f"daemon configuration 'listeningPort' must be a port number, found '{port}'")
        listen_interval = _interval(
            ctx, config, ("listeningInterval", "listenInterval"), DEFAULT_LISTEN_INTERVAL, MIN_LISTEN_INTERVAL
        )
        advertise_interval = _interval(
            ctx, config, ("advertiseInterval", "advertizeInterval"), DEFAULT_ADVERTISE_INTERVAL, MIN_ADVERTISE_INTERVAL
        )
        if ctx.has_errors() or raw is None:
            return None
        ctx.verbose(
            f"listeningPort='{port}' listenInterval='{listen_interval}' advertizeInterval='{advertise_interval}'"
        )
        try:
            sock = open_listening_socket(cast(int, port))
        except DaemonError as exc:
            ctx.error(str(exc))
            return None
        daemon = cls(
            ctx,
            name=name,
            json_path=path,
            raw=raw,
            config=config,
            sock=sock,
            commands=commands,
            listen_interval=listen_interval,
            advertise_interval=advertise_interval,
            publisher=publisher,
        )
        if install_sigint:
            signal.signal(signal.SIGINT, daemon._on_sigint)
        ctx.log(f"daemon '{name}' listening on port {daemon.listening_port}")
        return daemon

    def _on_sigint(self, signum: int, frame: FrameType | None) -> None:
        self.close()
        self.ctx.exit()

    @property
    def closed(self) -> bool:
        return self._socket is None

    def running(self) -> str:
        """Return the ``running since`` status line."""
        return f"running since {self.started_at.strftime(STARTED_FORMAT)}"

    def status(self) -> str:
        """Return the status answer, without the acknowledgement."""
        return "\n".join(
            [self.running(), f"json: {self.json_path}", f"listeningPort: {self.listening_port}"]
        )

    def topic(self) -> str:
        return f"{self.ctx.host}/daemon/{self.name}/status"

    def dispatch(self, request: Request) -> str:
        """Return the answer to *request*."""
        command = request.command
        if command == "help":
            names = sorted({*self.commands, *BUILTIN_COMMANDS})
            return ", ".join(names) + "\nOK"
        if command == "status":
            return self.status() + "\nOK"
        if command == "terminate":
            self.terminating = True
            return "OK"
        handler = self.commands.get(command)
        if handler is None:
            self.ctx.log(f"unknowned command '{command}' from '{request.peer[0]}'")
            return f"unknowned command '{command}'"
        return str(handler(request))

    def listen(self) -> Request | None:
        """Serve at most one pending connection without waiting for one."""
        if self.raw:
            self.config = evaluate_daemon_config(self.ctx, self.raw)
        request: Request | None = None
        if self._socket is not None:
            try:
                client, peer = self._socket.accept()
            except (BlockingIOError, InterruptedError):
                client = None
            if client is not None:
                with client:
                    request = self._serve(client, (str(peer[0]), int(peer[1])))
        self.advertise()
        return request

    def _serve(self, client: socket.socket, peer: tuple[str, int]) -> Request:
        client.settimeout(RECV_TIMEOUT)
        try:
            data = client.recv(BUFSIZE).decode("utf-8", errors="replace")
        except OSError as exc:
            data = ""
            self.ctx.warn(f"unable to read the request from '{peer[0]}': {exc}")
        self.ctx.log(f"received '{data.strip()}' from '{peer[0]}':'{peer[1]}'")
        words = data.split()
        request = Request(command=words[0] if words else "", args=words[1:], peer=peer, raw=data)
        request.answer = self.dispatch(request)
        self.answer(client, request.answer)
        return request

    def answer(self, client: socket.socket, answer: str) -> None:
        """Send *answer* and shut the write side of *client*."""
        self.ctx.log(f"answering '{answer}'")
        try:
            client.sendall((answer + "\n").encode("utf-8"))
            client.shutdown(socket.SHUT_WR)
        except OSError as exc:
            self.ctx.warn(f"unable to answer the client: {exc}")

    def advertise(self, *, force: bool = False) -> None:
        """Log, and publish when a publisher is set, the running status."""
        now = time.monotonic()
        if not force and self._last_advertised is not None and now - self._last_advertised < self.advertise_interval:
            return
        payload = self.running()
        self.ctx.log(f"{self.topic()} [{payload}]")
        if self.publisher is not None:
            self.publisher(self.topic(), {"status": payload})
        self._last_advertised = now

    def run(self, work: Callable[[], None] | None = None, interval: float | None = None) -> None:
        """Poll, work and sleep until a ``terminate`` request is served."""
        delay = self.listen_interval if interval is None else interval
        try:
            while not self.terminating:
                self.listen()
                if self.terminating:
                    break
                if work is not None:
                    work()
                if delay:
                    self.sleep(delay)
        finally:
            self.close()

    def close(self) -> None:
        """Close the listening socket; publishes the offline status."""
        if self._socket is None:
            return
        self._socket.close()
        self._socket = None
        self.ctx.verbose(f"daemon '{self.name}' closed its listening socket")
        if self.publisher is not None:
            self.publisher(self.topic(), {"status": OFFLINE})


def read_daemon_config(ctx: ExecutionContext, path: Path) -> Document | None:
    """Return the raw daemon configuration, which must be a non-empty mapping."""
    ctx.verbose(f"reading daemon configuration from '{path}'")
    try:
        document = read_document(path)
    except ConfigError as exc:
        ctx.error(str(exc))
        return None
    if not document:
        ctx.error(f"{path}: daemon configuration is empty")
        return None
    return document


def evaluate_daemon_config(ctx: ExecutionContext, raw: Document) -> Document:
    """Return *raw* evaluated against the run configuration."""
    names: dict[str, object] = {"host": ctx.host}
    if ctx.config is not None:
        names.update({"site": ctx.config.site, "node": ctx.config.node})
    return cast(
        Document,
        evaluate(
            raw,
            names=names,
            self_name="daemon",
            env=ctx.env,
            clock=ctx.clock,
            on_error=ctx.error,
        ),
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run a daemon answering the built-in commands only."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("usage: python -m ttp.daemon <daemon.json>", file=sys.stderr)
        return 1
    path = Path(args[0])
    ctx = ExecutionContext(daemon=path.stem)
    try:
        daemon = Daemon.init(ctx, path)
        if daemon is None:
            ctx.exit()
        ctx.verbose(f"daemon '{daemon.name}' started")
        daemon.run()
        ctx.exit()
    except RunExit as exc:
        return exc.code


__all__ = [
    "BUFSIZE",
    "BUILTIN_COMMANDS",
    "CommandHandler",
    "Daemon",
    "DaemonError",
    "Request",
    "answer_is_ok",
    "evaluate_daemon_config",
    "main",
    "open_listening_socket",
    "read_daemon_config",
    "send_command",
]


if __name__ == "__main__":
    sys.exit(main())
