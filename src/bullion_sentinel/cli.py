"""Click-based CLI for bullion-sentinel.

Thin wrapper around library modules. Every operation delegates to the
ingestion, pricing, or api modules.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import UTC, datetime

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from bullion_sentinel.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from bullion_sentinel.ingestion import create_store

    return await create_store(config.storage, config.catalog.products)


def _format_age(observed_at: datetime) -> str:
    seconds = int((datetime.now(UTC) - observed_at).total_seconds())
    if seconds < 120:
        return f"{seconds}s"
    if seconds < 7200:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="BULLION_SENTINEL_CONFIG",
    default=None,
    help="Path to bullion-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="bullion-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Bullion Sentinel: fresh precious-metal quotes and price computation."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--loop",
    "run_loop",
    is_flag=True,
    default=False,
    help="Keep refreshing on the configured interval until interrupted.",
)
@click.option(
    "--batch-cap",
    type=click.IntRange(min=1),
    default=None,
    help="Override ingestion.batch_cap for this run.",
)
@click.pass_context
def ingest(ctx: click.Context, run_loop: bool, batch_cap: int | None) -> None:
    """Fetch quotes from the upstream feed and store them."""
    config = _load_config(ctx)

    async def _run():
        from bullion_sentinel.ingestion import IngestionScheduler, QuoteSourceClient

        store = await _create_store_async(config)
        try:
            async with QuoteSourceClient(config.source) as client:
                scheduler = IngestionScheduler(
                    client,
                    store,
                    interval_seconds=config.ingestion.interval_seconds,
                    batch_cap=batch_cap or config.ingestion.batch_cap,
                    fetch_timeout_seconds=config.ingestion.fetch_timeout_seconds,
                )
                if run_loop:
                    console.print(
                        f"Refreshing every [bold]{config.ingestion.interval_seconds}s[/bold] "
                        f"from {config.source.url} (Ctrl+C to stop)"
                    )
                    await scheduler.run_forever()
                    return None
                return await scheduler.run_cycle()
        finally:
            await store.close()

    try:
        summary = _run_async(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        return

    if summary is None:
        return

    table = Table(title="Ingestion Cycle")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Status", summary.status.value)
    table.add_row("Fetched", str(summary.fetched))
    table.add_row("Attempted", str(summary.attempted))
    table.add_row("Inserted", str(summary.inserted))
    table.add_row("Failed", str(summary.failed))
    if summary.error:
        table.add_row("Error", summary.error)
    console.print(table)

    if summary.status.value != "ok":
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# price
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--product-id", "-p", type=int, required=True, help="Product id.")
@click.option("--gram", "-g", type=float, required=True, help="Weight in grams.")
@click.option(
    "--factor",
    "-f",
    type=float,
    required=True,
    help="Purity multiplier (e.g. 0.916 for 22K).",
)
@click.pass_context
def price(ctx: click.Context, product_id: int, gram: float, factor: float) -> None:
    """Compute a price from the latest stored quote."""
    config = _load_config(ctx)

    async def _run():
        from bullion_sentinel.pricing import PriceQueryService

        store = await _create_store_async(config)
        try:
            return await PriceQueryService(store).quote(product_id, gram, factor)
        finally:
            await store.close()

    from bullion_sentinel.core import PriceUnavailable, QuoteValidationError

    try:
        amount = _run_async(_run())
    except PriceUnavailable:
        console.print(f"[red]price not found for product {product_id}[/red]")
        raise SystemExit(1)
    except QuoteValidationError as e:
        raise click.BadParameter(str(e))

    click.echo(f"{amount:.2f}")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the REST API server with the ingestion loop."""
    import uvicorn

    from bullion_sentinel.api.app import create_app

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port
    app = create_app(config=config)

    console.print(f"Starting bullion-sentinel API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(app, host=host, port=port)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the catalog with each product's latest quote and its age."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            products = await store.list_products()
            latest = {q.product_id: q for q in await store.latest_quotes()}
            stats = await store.get_statistics()
        finally:
            await store.close()

        table = Table(title="Bullion Sentinel Status")
        table.add_column("Product", style="bold")
        table.add_column("Name")
        table.add_column("Sell", justify="right")
        table.add_column("Buy", justify="right")
        table.add_column("Observed at")
        table.add_column("Age", justify="right")

        for product in products:
            quote = latest.get(product.id)
            if quote is None:
                table.add_row(str(product.id), product.name, "-", "-", "N/A", "-")
                continue
            table.add_row(
                str(product.id),
                product.name,
                str(quote.sell_price),
                str(quote.buy_price),
                quote.observed_at.isoformat() if quote.has_timestamp else "unparsed",
                _format_age(quote.observed_at) if quote.has_timestamp else "-",
            )
        table.add_section()
        table.add_row("Total quotes", "", str(stats["total_quotes"]), "", "", "")

        console.print(f"Database: {config.storage.sqlite_path}")
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
