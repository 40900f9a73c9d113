"""Hosted account commands: login, signup, logout."""

from __future__ import annotations

from typing import Optional

import click

from ._common import AppContext, pass_app, print_info, reporting_errors
from .. import auth
from ..errors import ConfigurationError


def _resolve(app: AppContext, url: Optional[str], email: Optional[str]) -> tuple[str, str]:
    hosted = app.config.sync.hosted
    base_url = url or hosted.url
    if not base_url:
        raise ConfigurationError(
            "no hosted URL: pass --url or set sync.hosted.url in config"
        )
    identity = email or hosted.email or click.prompt("Email")
    return base_url, identity


def register_auth_commands(main: click.Group) -> None:
    """Register the hosted-service account commands."""

    @main.command("login")
    @click.option("--url", default=None, help="Hosted service URL.")
    @click.option("--email", default=None, help="Account email.")
    @pass_app
    def login(app: AppContext, url: Optional[str], email: Optional[str]):
        """Log in to the hosted service and store the token."""
        with reporting_errors():
            base_url, identity = _resolve(app, url, email)
            password = click.prompt("Password", hide_input=True)
            auth.login(base_url, identity, password, vault=app.token_vault)
        print_info(f"logged in as {identity}")

    @main.command("signup")
    @click.option("--url", default=None, help="Hosted service URL.")
    @click.option("--email", default=None, help="Account email.")
    @pass_app
    def signup(app: AppContext, url: Optional[str], email: Optional[str]):
        """Create a hosted account and store the token."""
        with reporting_errors():
            base_url, identity = _resolve(app, url, email)
            password = click.prompt(
                "Password", hide_input=True, confirmation_prompt=True,
            )
            auth.signup(base_url, identity, password, vault=app.token_vault)
        print_info(f"account created for {identity}")

    @main.command("logout")
    @click.option("--email", default=None, help="Account email.")
    @pass_app
    def logout(app: AppContext, email: Optional[str]):
        """Forget the stored hosted token."""
        with reporting_errors():
            identity = email or app.config.sync.hosted.email
            if not identity:
                raise ConfigurationError(
                    "no account: pass --email or set sync.hosted.email in config"
                )
            auth.logout(identity, vault=app.token_vault)
        print_info(f"logged out {identity}")
