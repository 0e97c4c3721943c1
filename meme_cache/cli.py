"""Command-line interface for meme-cache."""

import asyncio
import json
import logging
import sys

import click

from meme_cache.config import Settings
from meme_cache.context import create_context
from meme_cache.types import ConnectionState, EmbeddingState, EmbeddingStatus

TERMINAL_STATES = (EmbeddingState.READY, EmbeddingState.FAILED)


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "*" * max(len(value) - 4, 4)


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: MEME_CACHE_LOG_LEVEL or INFO)")
@click.pass_context
def cli(ctx: click.Context, log_level: str):
    """Inspect the meme library cache, status batching and real-time feed."""
    settings = Settings()
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@cli.command("config")
@click.pass_obj
def show_config(settings: Settings):
    """Print the effective settings."""
    data = settings.model_dump()
    data["api_key"] = _mask(data["api_key"])
    if data["redis_url"] and "@" in data["redis_url"]:
        scheme, _, rest = data["redis_url"].partition("://")
        data["redis_url"] = f"{scheme}://***@{rest.split('@', 1)[1]}"
    click.echo(json.dumps(data, indent=2, sort_keys=True))


async def _poll_statuses(settings: Settings, asset_ids: list, timeout: float, interval: float) -> dict:
    services = create_context(settings)
    latest: dict = {}

    def recorder(asset_id):
        def record(status: EmbeddingStatus):
            latest[asset_id] = status
            click.echo(f"{asset_id}: {status.status.value}" + (f" ({status.error})" if status.error else ""))
        return record

    try:
        for asset_id in asset_ids:
            services.status.subscribe(asset_id, recorder(asset_id))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            await services.status.flush()
            done = all(
                asset_id in latest and latest[asset_id].status in TERMINAL_STATES
                for asset_id in asset_ids
            )
            if done or loop.time() >= deadline:
                break
            await asyncio.sleep(min(interval, max(deadline - loop.time(), 0)))
    finally:
        await services.aclose()
    return latest


@cli.command()
@click.argument("asset_ids", nargs=-1, required=True)
@click.option("--timeout", default=60.0, show_default=True, help="Seconds to wait for terminal states")
@click.option("--interval", default=None, type=float, help="Seconds between batch checks")
@click.pass_obj
def status(settings: Settings, asset_ids, timeout: float, interval):
    """Poll embedding status for ASSET_IDS until ready/failed or timeout."""
    interval = settings.status_batch_interval if interval is None else interval
    latest = asyncio.run(_poll_statuses(settings, list(asset_ids), timeout, interval))

    missing = [asset_id for asset_id in asset_ids if asset_id not in latest]
    for asset_id in missing:
        click.echo(f"{asset_id}: unknown", err=True)
    not_ready = missing + [
        asset_id for asset_id, s in latest.items() if s.status != EmbeddingState.READY
    ]
    sys.exit(1 if not_ready else 0)


async def _watch(settings: Settings) -> ConnectionState:
    services = create_context(settings)
    stop = asyncio.Event()

    def on_update(update):
        click.echo(json.dumps(update, sort_keys=True))

    def on_state(state: ConnectionState):
        click.echo(f"[{state.value}]", err=True)

    services.realtime.subscribe("embedding-updates", on_update)
    services.realtime.on_state_change(on_state)
    services.realtime.set_polling_fallback(stop.set)
    try:
        services.realtime.connect()
        await stop.wait()
        return services.realtime.state
    finally:
        await services.aclose()


@cli.command()
@click.pass_obj
def watch(settings: Settings):
    """Stream embedding updates until interrupted or the connection fails."""
    try:
        final_state = asyncio.run(_watch(settings))
    except KeyboardInterrupt:
        return
    if final_state == ConnectionState.FAILED:
        click.echo("Real-time connection failed; giving up", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
