"""Slot commands: push, pull, show, slots, rm."""

from __future__ import annotations

import json

import click
from rich.table import Table

from ._common import (
    AppContext,
    console,
    format_age,
    format_size,
    format_time_until,
    pass_app,
    print_info,
    read_input,
    reporting_errors,
)


def register_slots_commands(main: click.Group) -> None:
    """Register the remote slot commands."""

    @main.command("push")
    @click.argument("name")
    @pass_app
    def push(app: AppContext, name: str):
        """Push the clipboard (or piped stdin) to slot NAME."""
        with reporting_errors():
            data = read_input(app)
            backend = app.backend()
            backend.push(name, data)
        print_info(f"pushed {format_size(len(data))} to slot {name!r} ({backend.name})")

    @main.command("pull")
    @click.argument("name")
    @pass_app
    def pull(app: AppContext, name: str):
        """Copy slot NAME into the local clipboard."""
        with reporting_errors():
            data, meta = app.backend().pull(name)
            app.clipboard.write(data)
        source = meta.hostname or "unknown host"
        print_info(
            f"pulled {format_size(len(data))} from slot {name!r} "
            f"(from {source}, {format_age(meta.created_at)})"
        )

    @main.command("show")
    @click.argument("name")
    @pass_app
    def show(app: AppContext, name: str):
        """Print slot NAME to stdout without touching the clipboard."""
        with reporting_errors():
            data, _ = app.backend().pull(name)
        out = click.get_binary_stream("stdout")
        out.write(data)
        out.flush()

    @main.command("slots")
    @click.option("--json", "as_json", is_flag=True, help="Machine-readable output.")
    @pass_app
    def slots(app: AppContext, as_json: bool):
        """List remote slots."""
        with reporting_errors():
            entries = app.backend().list()

        if as_json:
            click.echo(json.dumps([
                {
                    "name": e.name,
                    "size": e.size,
                    "size_human": format_size(e.size),
                    "created_at": e.created_at.isoformat() if e.created_at else None,
                    "age": format_age(e.created_at),
                    "expires_at": e.expires_at.isoformat() if e.expires_at else None,
                    "expires_in": format_time_until(e.expires_at),
                }
                for e in entries
            ], indent=2))
            return

        if not entries:
            console.print("[dim]No slots.[/]")
            return

        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("NAME", style="cyan")
        table.add_column("SIZE", justify="right")
        table.add_column("AGE")
        table.add_column("EXPIRES")
        for e in entries:
            table.add_row(
                e.name,
                format_size(e.size),
                format_age(e.created_at),
                format_time_until(e.expires_at),
            )
        console.print(table)

    @main.command("rm")
    @click.argument("name")
    @pass_app
    def rm(app: AppContext, name: str):
        """Delete slot NAME."""
        with reporting_errors():
            app.backend().delete(name)
        print_info(f"deleted slot {name!r}")
