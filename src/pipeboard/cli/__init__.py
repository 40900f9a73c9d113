"""
pipeboard CLI -- route clipboard content between machines.

The main Click group is defined here and every command group is
registered from its own module.

Entry point: pipeboard.cli:main
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ._common import AppContext, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="pipeboard")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr.")
@click.option(
    "--config", "config_file", type=click.Path(dir_okay=False, path_type=Path),
    envvar="PIPEBOARD_CONFIG", default=None,
    help="Config file (default: ~/.config/pipeboard/config.yaml).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_file: Optional[Path]):
    """pipeboard -- clipboard router.

    Park clipboard content in named slots (S3, a local directory, or the
    hosted service) and sync clipboards with peers over SSH.
    """
    setup_logging(verbose)
    if ctx.obj is None:
        ctx.obj = AppContext(config_file=config_file)
    elif config_file is not None:
        ctx.obj.config_file = config_file


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .auth_cmd import register_auth_commands
from .clipboard_cmd import register_clipboard_commands
from .peer_cmd import register_peer_commands
from .slots_cmd import register_slots_commands

register_slots_commands(main)
register_peer_commands(main)
register_clipboard_commands(main)
register_auth_commands(main)
