"""Peer commands: send, recv, peek, watch."""

from __future__ import annotations

import signal
import threading
from typing import Optional

import click

from ._common import (
    AppContext,
    format_size,
    logger,
    pass_app,
    print_info,
    read_input,
    reporting_errors,
)
from ..errors import ConfigurationError
from ..peer import PeerTransport
from ..watch import MIN_INTERVAL, Direction, WatchLoop


def _transport(app: AppContext, peer: Optional[str]) -> tuple[str, PeerTransport]:
    name, peer_cfg = app.config.get_peer(peer)
    return name, PeerTransport.from_config(peer_cfg)


def _install_stop_handlers(stop: threading.Event) -> dict:
    """Route SIGINT/SIGTERM to ``stop``; returns the previous handlers."""

    def _handle_signal(signum, frame):
        logger.info("Received signal %s, stopping", signal.Signals(signum).name)
        stop.set()

    previous = {}
    for sig in (signal.SIGTERM, signal.SIGINT):
        previous[sig] = signal.signal(sig, _handle_signal)
    return previous


def register_peer_commands(main: click.Group) -> None:
    """Register the SSH peer commands."""

    @main.command("send")
    @click.argument("peer", required=False)
    @pass_app
    def send(app: AppContext, peer: Optional[str]):
        """Send the clipboard (or piped stdin) to PEER's clipboard."""
        with reporting_errors():
            name, transport = _transport(app, peer)
            data = read_input(app)
            transport.send(data)
        print_info(f"sent {format_size(len(data))} to {name}")

    @main.command("recv")
    @click.argument("peer", required=False)
    @pass_app
    def recv(app: AppContext, peer: Optional[str]):
        """Copy PEER's clipboard into the local clipboard."""
        with reporting_errors():
            name, transport = _transport(app, peer)
            data = transport.receive()
            app.clipboard.write(data)
        print_info(f"received {format_size(len(data))} from {name}")

    @main.command("peek")
    @click.argument("peer", required=False)
    @pass_app
    def peek(app: AppContext, peer: Optional[str]):
        """Print PEER's clipboard to stdout."""
        with reporting_errors():
            _, transport = _transport(app, peer)
            data = transport.receive()
        out = click.get_binary_stream("stdout")
        out.write(data)
        out.flush()

    @main.command("watch")
    @click.argument("peer", required=False)
    @click.option(
        "--interval", "interval_ms", type=int, default=None,
        help="Poll interval in milliseconds (default from config, 500).",
    )
    @pass_app
    def watch(app: AppContext, peer: Optional[str], interval_ms: Optional[int]):
        """Keep the local clipboard and PEER's clipboard in sync.

        Runs until interrupted with Ctrl-C or SIGTERM.
        """
        with reporting_errors():
            name, peer_cfg = app.config.get_peer(peer)
            ms = interval_ms if interval_ms is not None else app.config.watch.interval_ms
            if ms <= 0:
                raise ConfigurationError(f"watch interval must be positive, got {ms}ms")
            interval = max(ms / 1000.0, MIN_INTERVAL)

            def on_transfer(direction: Direction, size: int) -> None:
                arrow = "->" if direction == Direction.SENT else "<-"
                print_info(f"{arrow} {name}: {format_size(size)}")

            loop = WatchLoop(
                PeerTransport.from_config(peer_cfg),
                read_local=app.clipboard.read,
                write_local=app.clipboard.write,
                interval=interval,
                on_transfer=on_transfer,
            )

            stop = threading.Event()
            previous = _install_stop_handlers(stop)
            print_info(
                f"watching {name} ({peer_cfg.ssh}) every {int(interval * 1000)}ms; "
                "Ctrl-C to stop"
            )
            try:
                loop.run(stop)
            finally:
                for sig, handler in previous.items():
                    signal.signal(sig, handler)
        print_info("watch stopped")
