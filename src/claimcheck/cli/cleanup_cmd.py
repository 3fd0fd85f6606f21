"""CLI command for deleting expired payloads.

Usage:
    claimcheck cleanup
    claimcheck cleanup --watch
    claimcheck cleanup --watch --interval 15
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from claimcheck.cleanup import BlobCleanupScheduler
from claimcheck.config import get_configuration
from claimcheck.errors import ConfigurationError
from claimcheck.factory import create_payload_store
from claimcheck.observability.logging import configure_logging
from claimcheck.storage.payload_store import PayloadStore

app = typer.Typer(help="Delete expired offloaded payloads")


async def _sweep(payload_store: PayloadStore) -> int:
    try:
        return await payload_store.cleanup_expired_blobs()
    finally:
        await payload_store.object_store.close()


async def _watch(payload_store: PayloadStore, interval_minutes: float) -> None:
    scheduler = BlobCleanupScheduler(payload_store, interval_minutes)
    try:
        await scheduler.run_once()
        await scheduler.run()
    finally:
        await payload_store.object_store.close()


@app.callback(invoke_without_command=True)
def cleanup(
    watch: bool = typer.Option(
        False,
        "--watch",
        "-w",
        help="Keep running and sweep on an interval",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Minutes between sweeps (defaults to CLAIMCHECK_TTL_CLEANUP_INTERVAL_MINUTES)",
    ),
) -> None:
    """Delete offloaded payloads whose TTL has passed.

    Only payloads written with TTL metadata are considered; everything else
    in the container is left alone.
    """
    from rich.console import Console

    console = Console()
    config = get_configuration()
    configure_logging(json_format=config.log_json, level=config.log_level)

    try:
        payload_store = create_payload_store(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if payload_store is None:
        console.print("[red]Error:[/red] cleanup is unavailable in receive-only mode")
        raise typer.Exit(code=1)

    if not watch:
        deleted = asyncio.run(_sweep(payload_store))
        console.print(f"[green]Deleted {deleted} expired payload(s)[/green]")
        return

    interval_minutes = interval or config.ttl_cleanup_interval_minutes
    if interval_minutes <= 0:
        console.print("[red]Error:[/red] --watch needs a positive --interval")
        raise typer.Exit(code=1)

    console.print(
        f"[blue]Sweeping {config.container_name} every {interval_minutes} minute(s)...[/blue]"
    )
    try:
        asyncio.run(_watch(payload_store, interval_minutes))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
