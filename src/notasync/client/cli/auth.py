"""Credential commands for the notasync CLI.

Commands:
- login: Store Google access credentials
- logout: Forget them
"""

from __future__ import annotations

import click

from notasync.client.cli.config import CREDENTIAL_KEYS, load_config, save_config


@click.command()
@click.option("--token", required=True, help="OAuth access token with the drive.appdata scope.")
@click.option("--refresh-token", default=None, help="OAuth refresh token.")
@click.option("--client-id", default=None, help="OAuth client id (needed to refresh).")
@click.option("--client-secret", default=None, help="OAuth client secret.")
def login(
    token: str,
    refresh_token: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> None:
    """Store the credentials used to reach Google Drive."""
    config = load_config()
    if config.get("access_token"):
        click.echo("Replacing existing credentials.")

    config["access_token"] = token
    for key, value in (
        ("refresh_token", refresh_token),
        ("client_id", client_id),
        ("client_secret", client_secret),
    ):
        if value:
            config[key] = value
        else:
            config.pop(key, None)
    save_config(config)

    if refresh_token and client_id:
        click.echo("Logged in (token refresh enabled).")
    else:
        click.echo("Logged in (no refresh token, re-login when the token expires).")


@click.command()
def logout() -> None:
    """Forget the stored credentials."""
    config = load_config()
    if not any(key in config for key in CREDENTIAL_KEYS):
        click.echo("Not logged in.")
        return
    for key in CREDENTIAL_KEYS:
        config.pop(key, None)
    save_config(config)
    click.echo("Logged out.")
