"""Shared utilities for all CLI command modules.

Provides the Rich consoles, the per-invocation application context,
error reporting, and size/age formatting helpers.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ..clipboard import ClipboardContext
from ..config import Config, load_config
from ..errors import PipeboardError
from ..slots import SlotBackend, create_backend
from ..tokens import FileTokenVault, TokenVault


def use_color() -> bool:
    """Color unless NO_COLOR is set or the terminal is dumb."""
    if os.environ.get("NO_COLOR"):
        return False
    return os.environ.get("TERM") != "dumb"


console = Console(no_color=not use_color(), highlight=False)
err_console = Console(stderr=True, no_color=not use_color(), highlight=False)

logger = logging.getLogger("pipeboard.cli")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@dataclass
class AppContext:
    """Per-process state handed to every command via ``ctx.obj``."""

    config_file: Optional[Path] = None
    clipboard: ClipboardContext = field(default_factory=ClipboardContext)
    token_vault: TokenVault = field(default_factory=FileTokenVault)
    _config: Optional[Config] = None

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = load_config(self.config_file)
        return self._config

    def backend(self) -> SlotBackend:
        return create_backend(self.config.sync, token_vault=self.token_vault)


pass_app = click.make_pass_decorator(AppContext, ensure=True)


def read_input(app: AppContext) -> bytes:
    """Piped stdin wins over the clipboard."""
    stdin = click.get_binary_stream("stdin")
    if not stdin.isatty():
        return stdin.read()
    return app.clipboard.read()


def print_error(message: str) -> None:
    err_console.print(f"[bold red]pipeboard:[/] {escape(message)}", soft_wrap=True)


def print_info(message: str) -> None:
    err_console.print(message, soft_wrap=True, markup=False)


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn PipeboardError into a one-line message and exit status 1."""
    try:
        yield
    except PipeboardError as exc:
        print_error(" ".join(str(exc).split()) or exc.__class__.__name__)
        sys.exit(1)


def format_size(size: int) -> str:
    """Human-readable byte count: 512 B, 1.5 KiB, 3.0 MiB."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}iB"


def _humanize(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h"
    return f"{int(seconds // 86400)}d"


def format_age(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    if when is None:
        return "-"
    current = now or datetime.now(timezone.utc)
    return _humanize(max(0.0, (current - when).total_seconds())) + " ago"


def format_time_until(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    if when is None:
        return "-"
    current = now or datetime.now(timezone.utc)
    remaining = (when - current).total_seconds()
    if remaining < 0:
        return "expired"
    return _humanize(remaining)
