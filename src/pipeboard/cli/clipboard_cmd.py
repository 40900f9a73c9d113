"""Local clipboard commands: copy, paste, clear, backend.

``copy`` and ``paste`` are also what a peer runs over SSH, so they keep
stdout free of anything but clipboard bytes.
"""

from __future__ import annotations

from typing import Optional

import click

from ._common import AppContext, console, pass_app, print_info, reporting_errors


def register_clipboard_commands(main: click.Group) -> None:
    """Register the local clipboard commands."""

    @main.command("copy")
    @click.argument("text", required=False)
    @pass_app
    def copy(app: AppContext, text: Optional[str]):
        """Copy TEXT (or stdin) into the clipboard."""
        with reporting_errors():
            if text is not None:
                data = text.encode("utf-8")
            else:
                data = click.get_binary_stream("stdin").read()
            app.clipboard.write(data)

    @main.command("paste")
    @pass_app
    def paste(app: AppContext):
        """Write the clipboard to stdout."""
        with reporting_errors():
            data = app.clipboard.read()
        out = click.get_binary_stream("stdout")
        out.write(data)
        out.flush()

    @main.command("clear")
    @pass_app
    def clear(app: AppContext):
        """Empty the clipboard."""
        with reporting_errors():
            app.clipboard.clear()
        print_info("clipboard cleared")

    @main.command("backend")
    @pass_app
    def backend(app: AppContext):
        """Show which clipboard commands were detected."""
        with reporting_errors():
            info = app.clipboard.backend

        status = "[green]ok[/]" if info.usable else "[red]unavailable[/]"
        console.print(f"[bold]Backend:[/] {info.kind.value} ({status})")
        if info.copy_cmd:
            console.print(f"  copy:  {' '.join(info.copy_cmd)}")
        if info.paste_cmd:
            console.print(f"  paste: {' '.join(info.paste_cmd)}")
        if info.env_source:
            console.print(f"  [dim]detected via ${info.env_source}[/]")
        if info.missing:
            console.print(f"  [yellow]missing:[/] {', '.join(info.missing)}")
            console.print(f"  [dim]{info.install_hint()}[/]")
        if info.notes:
            console.print(f"  [dim]{info.notes}[/]")
