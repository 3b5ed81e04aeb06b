"""Click-based CLI for crypto-rates.

Thin wrapper around library modules. Zero business logic: every operation
delegates to the ingestion pipeline, the scheduler, the resolver, or the store.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

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


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from crypto_rates.core import load_config
        from crypto_rates.core.logging import configure_logging

        config = load_config(config_path=ctx.obj.get("config_path"))
        configure_logging(config.logging, verbose=ctx.obj.get("verbose", False))
        ctx.obj["config"] = config
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from crypto_rates.prices import create_store

    return await create_store(config.storage)


def _build_pipeline(config, store):
    """Wire the ingestion pipeline; exits on provider misconfiguration."""
    from crypto_rates.core import ConfigError
    from crypto_rates.ingestion import build_pipeline

    try:
        return build_pipeline(config, store)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise SystemExit(2)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CRYPTO_RATES_CONFIG",
    default=None,
    help="Path to crypto-rates.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="crypto-rates")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Crypto Rates: scheduled price ingestion and point-in-time conversion."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the run report as JSON.")
@click.pass_context
def ingest(ctx: click.Context, as_json: bool) -> None:
    """Fetch current prices from all providers and store them once."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            pipeline = _build_pipeline(config, store)
            report = await pipeline.run_once()
        finally:
            await store.close()

        if as_json:
            click.echo(json.dumps(report.to_dict(), indent=2))
            return
        for provider, error in report.errors.items():
            console.print(f"[yellow]{provider} failed: {error}[/yellow]")
        console.print(
            f"[green]✓[/green] Ingested {report.inserted} price records "
            f"from {len(report.fetched)} provider(s)"
        )

    _run_async(_run())


# ---------------------------------------------------------------------------
# convert
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("currency1")
@click.argument("currency2")
@click.option(
    "--at",
    "target_time",
    type=str,
    default=None,
    help="ISO-8601 instant (e.g. 2023-01-01T00:00:00Z). Default: now.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format.",
)
@click.pass_context
def convert(
    ctx: click.Context,
    currency1: str,
    currency2: str,
    target_time: str | None,
    output_format: str,
) -> None:
    """Show the CURRENCY1/CURRENCY2 rate at or before a point in time."""
    from crypto_rates.conversion import ConversionResolver
    from crypto_rates.core import InvalidRequestError, NotFoundError

    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            resolver = ConversionResolver(store, config.currencies.symbols)
            return await resolver.convert(currency1, currency2, target_time)
        finally:
            await store.close()

    try:
        result = _run_async(_run())
    except (InvalidRequestError, NotFoundError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)

    if output_format == "json":
        click.echo(
            json.dumps(
                {
                    "from": result.from_symbol,
                    "to": result.to_symbol,
                    "rate": str(result.rate),
                    "timestamp": result.query_timestamp.isoformat(),
                    "data_timestamps": {
                        k: v.isoformat() for k, v in result.data_timestamps.items()
                    },
                },
                indent=2,
            )
        )
        return

    click.echo(f"1 {result.from_symbol} = {result.rate} {result.to_symbol}")
    for symbol, ts in result.data_timestamps.items():
        console.print(f"  {symbol} price as of {ts.isoformat()}")


# ---------------------------------------------------------------------------
# schedule
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between runs. Default: scheduler.interval_seconds.",
)
@click.pass_context
def schedule(ctx: click.Context, interval: float | None) -> None:
    """Run recurring ingestion in the foreground until interrupted."""
    from crypto_rates.core import ConfigError
    from crypto_rates.ingestion import RecurringScheduler, RetryPolicy

    config = _load_config(ctx)
    cadence = interval or config.scheduler.interval_seconds

    async def _run():
        store = await _create_store_async(config)
        scheduler = RecurringScheduler()
        try:
            pipeline = _build_pipeline(config, store)
            scheduler.schedule(
                cadence, RetryPolicy.from_config(config.scheduler), pipeline.run_once
            )
            console.print(f"Ingesting every [bold]{cadence:g}s[/bold]. Ctrl-C to stop.")
            await scheduler.wait()
        finally:
            await scheduler.stop()
            await store.close()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise SystemExit(2)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address. Default: api.host.")
@click.option("--port", "-p", type=int, default=None, help="Port number. Default: api.port.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    from crypto_rates.core.config import CONFIG_ENV_VAR

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    # The app factory runs in uvicorn and loads config itself; point it at
    # the same file this command was given
    if ctx.obj.get("config_path"):
        os.environ[CONFIG_ENV_VAR] = str(Path(ctx.obj["config_path"]).resolve())

    console.print(f"Starting crypto-rates API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "crypto_rates.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show stored observation coverage."""
    from crypto_rates.prices import default_registry

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            stats = await store.get_statistics()

            table = Table(title="Crypto Rates Status")
            table.add_column("Metric", style="bold")
            table.add_column("Value", justify="right")

            table.add_row("Storage backend", config.storage.backend.value)
            table.add_row("Database path", config.storage.sqlite_path)
            table.add_row("Allow-listed symbols", ",".join(config.currencies.symbols))
            table.add_row("Registered providers", ",".join(default_registry().names()))
            table.add_section()
            table.add_row("Total observations", str(stats["total_observations"]))
            table.add_row(
                "Time range",
                f"{stats['earliest']} → {stats['latest']}"
                if stats["total_observations"] > 0
                else "N/A",
            )
            table.add_section()
            for symbol, count in stats["symbols"].items():
                table.add_row(symbol, str(count))

            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
