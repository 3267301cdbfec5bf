"""CLI entry point for media-chaos."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from . import __version__
from .config import DEFAULT_CONFIG_PATH, MediaChaosConfig, load_config, save_config
from .exceptions import ConfigError, PresetNotFoundError
from .models import ClientInfo, SimulationStatus

logger = logging.getLogger("media-chaos")

# Extra wait after the test window before unfinished simulations are reported
_GRACE_SECONDS = 10.0


# ── Helpers ──────────────────────────────────────────────


async def _lookup_client_info(config: MediaChaosConfig) -> ClientInfo:
    from .client_info import fetch_client_info

    if not config.client_info.enabled:
        return ClientInfo.unknown()
    return await fetch_client_info(
        config.client_info.url, config.client_info.timeout_seconds
    )


async def _prefetch_client_info(state: dict) -> None:
    state["client_info"] = await _lookup_client_info(state["config"])


def _client_header(info: ClientInfo) -> str:
    return (
        f"Client: {info.ip} ({info.city}, {info.region}, {info.country}) {info.org}"
    )


def _configure_logging(level: str = "INFO") -> None:
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    logging.basicConfig(level=level.upper(), handlers=[console], force=True)
    for noisy in ("aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _load(ctx: click.Context) -> MediaChaosConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except (ConfigError, ValidationError) as e:
        raise click.ClickException(str(e)) from e


# ── CLI Commands ─────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="media-chaos")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override log level",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """media-chaos: chaos testing for media playback sessions."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    config = _load(ctx)
    ctx.obj["config"] = config
    _configure_logging(log_level or config.log_level)


@main.command()
@click.pass_context
def presets(ctx: click.Context) -> None:
    """List available chaos presets."""
    from .presets import PresetTable

    table = PresetTable(ctx.obj["config"].presets)
    click.echo(f"{len(table)} preset(s):")
    for key, preset in table.items():
        click.echo(f"  {key:<10} {preset.name}")
        click.echo(
            f"             delay={preset.initial_delay_ms}ms "
            f"error_rate={preset.error_rate:g} chaos={preset.chaos_type.value}"
        )
        if preset.description:
            click.echo(f"             {preset.description}")


async def _run_headless(
    config: MediaChaosConfig,
    source_url: str,
    preset_keys: list[str],
    count: int,
    seed: int | None,
) -> tuple[list, ClientInfo]:
    from .engine.manager import SimulationManager

    info_task = asyncio.create_task(_lookup_client_info(config))
    rng = random.Random(seed) if seed is not None else None
    manager = SimulationManager(config, rng=rng)
    ids = []
    for key in preset_keys:
        for _ in range(count):
            ids.append(manager.create(source_url, key).id)

    longest_delay = max(manager.presets.get(k).initial_delay_ms for k in preset_keys)
    timeout = config.engine.test_duration_seconds + longest_delay / 1000 + _GRACE_SECONDS
    if not await manager.wait(ids, timeout=timeout):
        logger.warning("Timed out waiting for simulations; reporting current state")
    await manager.shutdown()
    return [manager.get(i) for i in ids], await info_task


@main.command()
@click.argument("source_url", required=False)
@click.option(
    "--preset", "-p", "preset_keys", multiple=True, help="Preset key (repeatable)"
)
@click.option("--count", default=1, type=click.IntRange(min=1), help="Runs per preset")
@click.option(
    "--duration",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Test window in seconds",
)
@click.option(
    "--player",
    "player_type",
    default=None,
    type=click.Choice(["simulated", "http"]),
    help="Player backend",
)
@click.option("--seed", default=None, type=int, help="Seed for reproducible chaos")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def run(
    ctx: click.Context,
    source_url: str | None,
    preset_keys: tuple[str, ...],
    count: int,
    duration: float | None,
    player_type: str | None,
    seed: int | None,
    as_json: bool,
) -> None:
    """Run simulations headless and print the QoE report."""
    from .presets import PresetTable
    from .report import render_table, summarize

    config: MediaChaosConfig = ctx.obj["config"]
    if duration is not None:
        config.engine.test_duration_seconds = duration
    if player_type:
        config.player.type = player_type

    keys = list(preset_keys) or ["baseline"]
    table = PresetTable(config.presets)
    for key in keys:
        if key not in table:
            raise click.BadParameter(str(PresetNotFoundError(key, table.keys())))

    url = source_url or config.default_source_url
    sims, info = asyncio.run(_run_headless(config, url, keys, count, seed))

    if as_json:
        click.echo(json.dumps([summarize(s) for s in sims], indent=2))
    else:
        click.echo(_client_header(info))
        click.echo(render_table(sims))

    unfinished = [
        s
        for s in sims
        if s.status in (SimulationStatus.FAILED, SimulationStatus.PENDING)
    ]
    if unfinished:
        ctx.exit(1)


async def _serve(config: MediaChaosConfig) -> None:
    from aiohttp import web

    from .api import create_api_routes
    from .engine.manager import SimulationManager

    manager = SimulationManager(config)
    state = {"manager": manager, "config": config}
    info_task = asyncio.create_task(_prefetch_client_info(state))
    app = create_api_routes(state)
    runner = web.AppRunner(app)
    await runner.setup()
    try:
        site = web.TCPSite(runner, config.api.host, config.api.port)
        await site.start()
        click.echo(f"media-chaos API: http://{config.api.host}:{config.api.port}")

        baseline = manager.presets.get("baseline")
        manager.create(
            config.default_source_url,
            "baseline",
            f"{baseline.name} (INITIAL CHECK)",
        )
        await asyncio.Event().wait()
    finally:
        info_task.cancel()
        await runner.cleanup()


@main.command()
@click.option("--host", default=None, help="Override API host")
@click.option("--port", default=None, type=int, help="Override API port")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API with an initial baseline check."""
    config: MediaChaosConfig = ctx.obj["config"]
    if host:
        config.api.host = host
    if port:
        config.api.port = port
    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        click.echo("Shutting down.")


@main.command("client-info")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def client_info(ctx: click.Context, as_json: bool) -> None:
    """Show the network identity of this machine."""
    from .client_info import fetch_client_info

    cfg = ctx.obj["config"].client_info
    info = asyncio.run(fetch_client_info(cfg.url, cfg.timeout_seconds))
    if as_json:
        click.echo(json.dumps(info.model_dump(), indent=2))
        return
    click.echo(f"IP:       {info.ip}")
    click.echo(f"Location: {info.city}, {info.region}, {info.country}")
    click.echo(f"ISP:      {info.org}")


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write a default config file."""
    path = Path(ctx.obj.get("config_path") or DEFAULT_CONFIG_PATH).expanduser()
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    written = save_config(MediaChaosConfig(), path)
    click.echo(f"Config written to {written}")


if __name__ == "__main__":
    main()
