"""Sync commands for the notasync CLI.

Commands:
- sync: Synchronize every domain (or one) with Google Drive
- status: Show device identity and last sync times
- clear-cloud: Delete every remote blob
"""

from __future__ import annotations

import asyncio
import sys

import click

from notasync.client.app import SyncApp, create_sync_app
from notasync.client.cli.config import (
    get_state_db_path,
    load_credentials,
    load_sync_config,
)
from notasync.client.notifications import send_notification, sync_result_notice
from notasync.client.state import LocalSyncState
from notasync.client.sync.types import DomainResult, SyncOutcome
from notasync.core.device import get_device_id
from notasync.core.envelope import EPOCH, format_timestamp
from notasync.core.types import SyncDomain

_OUTCOME_LABELS = {
    SyncOutcome.CREATED: "uploaded (first sync)",
    SyncOutcome.PUSHED: "pushed",
    SyncOutcome.PULLED: "pulled",
    SyncOutcome.MERGED: "merged",
    SyncOutcome.FAILED: "FAILED",
}


def _open_app() -> SyncApp:
    credentials = load_credentials()
    if credentials is None:
        click.echo("Error: Not logged in. Run 'notasync login' first.", err=True)
        sys.exit(1)
    db_path = get_state_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_sync_app(db_path, load_sync_config(), credentials=credentials)


def _echo_result(result: DomainResult) -> None:
    line = f"  {result.domain.value:<10} {_OUTCOME_LABELS[result.outcome]}"
    if result.error:
        line += f" - {result.error}"
    click.echo(line, err=not result.success)


async def _run_sync(app: SyncApp, domain: SyncDomain | None) -> list[DomainResult]:
    try:
        if domain is not None:
            return [await app.manager.sync_domain(domain)]
        result = await app.manager.sync_all()
        return list(result.results.values())
    finally:
        await app.close()


@click.command()
@click.option(
    "--domain",
    "-d",
    type=click.Choice([d.value for d in SyncDomain]),
    default=None,
    help="Sync a single domain instead of all of them.",
)
@click.option(
    "--notify",
    is_flag=True,
    help="Show a desktop notification with the result.",
)
def sync(domain: str | None, notify: bool) -> None:
    """Synchronize local data with Google Drive.

    The newer side of each domain wins: a newer local copy is uploaded,
    otherwise the remote copy replaces the local one.
    """
    app = _open_app()
    target = SyncDomain.parse(domain) if domain else None

    click.echo(f"Syncing {target.value if target else 'all domains'}...")
    results = asyncio.run(_run_sync(app, target))
    for result in results:
        _echo_result(result)

    failed = [r.domain.value for r in results if not r.success]
    if notify:
        send_notification(sync_result_notice(not failed, failed))
    if failed:
        click.echo(f"Sync failed for: {', '.join(failed)}", err=True)
        sys.exit(1)
    click.echo("Sync complete.")


@click.command()
def status() -> None:
    """Show device id and last sync times."""
    state = LocalSyncState(get_state_db_path()) if get_state_db_path().exists() else None
    if state is None:
        click.echo("Never synced on this device.")
        return

    try:
        click.echo(f"Device: {get_device_id(state)}")
        last_full = state.get_last_full_sync()
        click.echo(f"Last full sync: {format_timestamp(last_full) if last_full else 'never'}")
        for domain in SyncDomain:
            synced = state.get_domain_sync_time(domain)
            label = "never" if synced == EPOCH else format_timestamp(synced)
            click.echo(f"  {domain.value:<10} {label}")
    finally:
        state.close()


async def _run_clear(app: SyncApp) -> bool:
    try:
        return await app.manager.clear_cloud_data()
    finally:
        await app.close()


@click.command("clear-cloud")
@click.confirmation_option(prompt="Delete all synced data from Google Drive?")
def clear_cloud() -> None:
    """Delete every remote blob. Local data is kept."""
    app = _open_app()
    if not asyncio.run(_run_clear(app)):
        click.echo("Error: Could not clear cloud data.", err=True)
        sys.exit(1)
    click.echo("Cloud data cleared.")
