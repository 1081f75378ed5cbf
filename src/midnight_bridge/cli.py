"""Command line entry point: ``midnight-bridge``.

Settings come from ``MIDNIGHT_*`` environment variables (and ``.env``).

Exit codes:
    0  success
    1  the bridge is unhealthy or the request failed
    2  invalid configuration
"""

from __future__ import annotations

import logging

import click

from .client import MidnightClient
from .exceptions import ConfigurationError, MidnightError
from .utils import mask_address

logger = logging.getLogger(__name__)


def _client(ctx: click.Context) -> MidnightClient:
    obj = ctx.ensure_object(dict)
    client = obj.get("client")
    if client is None:
        try:
            client = MidnightClient.from_env()
        except ConfigurationError as exc:
            click.echo(f"Configuration error: {exc.message}", err=True)
            ctx.exit(2)
        obj["client"] = client
        ctx.call_on_close(client.close)
    return client


@click.group()
@click.version_option(package_name="midnight-bridge")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Inspect and maintain a Midnight bridge connection.

    \b
    Commands:
      health       Check bridge availability and network metadata.
      cache-clear  Drop cached contract reads.
      tx-status    Show the ledger status of a transaction.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)


@cli.command("health")
@click.pass_context
def health_command(ctx: click.Context) -> None:
    """Check that the bridge answers and print its network metadata."""

    client = _client(ctx)
    click.echo(f"Bridge: {client.config.bridge.base_uri}")

    if not client.health_check():
        click.echo(click.style("Bridge health check failed", fg="red"), err=True)
        ctx.exit(1)
    click.echo(click.style("Bridge is healthy", fg="green"))

    try:
        metadata = client.get_network_metadata()
    except MidnightError as exc:
        click.echo(f"Could not load network metadata: {exc.message}", err=True)
        ctx.exit(1)

    rows = [
        ("Network", metadata.name or "-"),
        ("Chain ID", metadata.chain_id or "-"),
        ("Explorer", metadata.explorer_uri or "-"),
    ]
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        click.echo(f"  {label.ljust(width)}  {value}")


@cli.command("cache-clear")
@click.option("--address", "address", default=None, help="Only clear this contract address.")
@click.pass_context
def cache_clear_command(ctx: click.Context, address: str | None) -> None:
    """Drop cached contract reads for one address or for all of them."""

    client = _client(ctx)
    cleared = client.cache.flush(address)
    if address:
        click.echo(f"Cleared {cleared} cached read(s) for {mask_address(address)}")
    else:
        click.echo(f"Cleared {cleared} cached entr{'y' if cleared == 1 else 'ies'}")


@cli.command("tx-status")
@click.argument("tx_hash")
@click.pass_context
def tx_status_command(ctx: click.Context, tx_hash: str) -> None:
    """Print the ledger status of TX_HASH."""

    client = _client(ctx)
    try:
        status = client.get_transaction_status(tx_hash)
    except MidnightError as exc:
        click.echo(f"Failed to fetch status for {tx_hash}: {exc.message}", err=True)
        ctx.exit(1)

    click.echo(f"Transaction: {tx_hash}")
    click.echo(f"Status:      {status.status}")
    if status.block_height is not None:
        click.echo(f"Block:       {status.block_height}")
    if not status.is_final():
        logger.debug("Transaction %s is not final yet", tx_hash)


if __name__ == "__main__":  # pragma: no cover
    cli()
