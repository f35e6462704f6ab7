"""
Slashwatch CLI

Usage:
    slashwatch run [--config FILE] [--api/--no-api]
    slashwatch check [--config FILE] [--network NAME] [--json]
    slashwatch round <round> [--config FILE] [--network NAME]
    slashwatch config [--config FILE]
"""

import asyncio
import json
from typing import List, Optional

import click
import uvicorn

from . import __version__
from .api import create_app
from .config import MonitorConfig, NetworkConfig, load_config
from .exceptions import SlashWatchException
from .logger import LogManager, get_logger
from .metrics import MetricsRegistry
from .monitor import SlashingMonitor, build_monitors, run_networks
from .notifications import LoggingNotifier, build_notifier
from .store import InMemorySlashingStore
from .types import DetectedSlashing, RoundStatus

logger = get_logger(__name__)

STATUS_COLORS = {
    RoundStatus.VOTING: "white",
    RoundStatus.QUORUM_REACHED: "yellow",
    RoundStatus.IN_VETO_WINDOW: "red",
    RoundStatus.EXECUTABLE: "red",
    RoundStatus.EXECUTED: "green",
    RoundStatus.EXPIRED: "white",
}


def _load(config_path: Optional[str]) -> MonitorConfig:
    try:
        return load_config(config_path)
    except SlashWatchException as e:
        raise click.ClickException(str(e))


def _select(cfg: MonitorConfig, network: Optional[str]) -> List[NetworkConfig]:
    if network is None:
        return list(cfg.networks)
    selected = [n for n in cfg.networks if n.name == network]
    if not selected:
        raise click.ClickException(f"Unknown network: {network}")
    return selected


def format_detection(d: DetectedSlashing) -> str:
    status = click.style(f"{d.status.value:<15}", fg=STATUS_COLORS[d.status], bold=d.status.is_actionable)
    line = f"  round {d.round:>8}  {status} votes={d.vote_count}"
    if d.has_detail:
        line += f" validators={d.affected_validator_count} payload={d.payload_address}"
        if d.is_vetoed:
            line += click.style(" VETOED", fg="green")
    if d.seconds_until_executable:
        line += f" executable_in={d.seconds_until_executable}s"
    return line


@click.group()
@click.version_option(version=__version__, prog_name="slashwatch")
@click.option("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)")
def cli(log_level: Optional[str]):
    """Slashwatch Command Line Interface

    Watches slashing rounds and alerts while a veto is still possible.
    """
    if log_level:
        LogManager().set_level(log_level)


@cli.command("run")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.toml")
@click.option("--api/--no-api", default=None, help="Serve the HTTP API (default: [api] enabled)")
def run_cmd(config_path: Optional[str], api: Optional[bool]):
    """Monitor every configured network until interrupted."""
    cfg = _load(config_path)
    serve_api = cfg.api.enabled if api is None else api
    try:
        asyncio.run(_run(cfg, serve_api))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


async def _run(cfg: MonitorConfig, serve_api: bool) -> None:
    store = InMemorySlashingStore()
    notifier = build_notifier(cfg.notifications)
    registry = MetricsRegistry()
    monitors = build_monitors(cfg.networks, store, notifier, registry)

    tasks = [asyncio.create_task(run_networks(monitors), name="monitors")]
    if serve_api:
        server = uvicorn.Server(uvicorn.Config(
            create_app(store, registry),
            host=cfg.api.host,
            port=cfg.api.port,
            access_log=False,
            log_config=None,
        ))
        tasks.append(asyncio.create_task(server.serve(), name="api"))
        logger.info(f"API listening on http://{cfg.api.host}:{cfg.api.port}")

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.exception() is not None:
                raise task.exception()
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await notifier.aclose()


@cli.command("check")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.toml")
@click.option("--network", "-n", default=None, help="Only check this network")
@click.option("--json", "as_json", is_flag=True, help="Print detections as JSON")
def check_cmd(config_path: Optional[str], network: Optional[str], as_json: bool):
    """Run a single poll cycle and print what it found."""
    cfg = _load(config_path)
    results = asyncio.run(_check(_select(cfg, network)))

    if as_json:
        serializable = {
            name: {k: v for k, v in result.items() if k != "objects"}
            for name, result in results.items()
        }
        click.echo(json.dumps(serializable, indent=2))
        return

    for name, result in results.items():
        chain = result["chain"]
        click.echo(click.style(f"{name}", bold=True) + f"  round {chain['current_round']}, slot {chain['current_slot']}")
        if not chain["is_slashing_enabled"]:
            click.echo(click.style("  slashing disabled", fg="yellow"))
        if not result["detections"]:
            click.echo("  no rounds detected")
        for d in result["objects"]:
            click.echo(format_detection(d))


async def _check(networks: List[NetworkConfig]) -> dict:
    store = InMemorySlashingStore()
    results = {}
    for network_config in networks:
        monitor = SlashingMonitor.create(network_config, store, LoggingNotifier())
        try:
            await monitor.initialize()
            detections = await monitor.poll()
        except SlashWatchException as e:
            raise click.ClickException(f"{network_config.name}: {e}")
        finally:
            await monitor.aclose()
        if detections is None:
            raise click.ClickException(f"{network_config.name}: poll cycle failed, see log")
        results[network_config.name] = {
            "chain": store.get_chain_position(network_config.name).to_dict(),
            "stats": store.get_stats(network_config.name).to_dict(),
            "detections": [d.to_dict() for d in detections],
            "objects": detections,
        }
    return results


@cli.command("round")
@click.argument("round_number", type=int)
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.toml")
@click.option("--network", "-n", default=None, help="Network name (default: first configured)")
def round_cmd(round_number: int, config_path: Optional[str], network: Optional[str]):
    """Detect a single round and print it as JSON."""
    cfg = _load(config_path)
    network_config = _select(cfg, network)[0]
    detection = asyncio.run(_detect_round(network_config, round_number))
    if detection is None:
        raise click.ClickException(f"Round {round_number}: nothing to report")
    click.echo(json.dumps(detection.to_dict(), indent=2))


async def _detect_round(network_config: NetworkConfig, round_number: int) -> Optional[DetectedSlashing]:
    monitor = SlashingMonitor.create(network_config, InMemorySlashingStore(), LoggingNotifier())
    try:
        await monitor.initialize()
        chain = await monitor.reader.get_chain_position()
        return await monitor.detector.detect_round(round_number, chain)
    except SlashWatchException as e:
        raise click.ClickException(str(e))
    finally:
        await monitor.aclose()


@cli.command("config")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.toml")
def config_cmd(config_path: Optional[str]):
    """Validate the configuration and print it."""
    cfg = _load(config_path)
    click.echo(click.style("✓ Configuration valid", fg="green"))
    click.echo(json.dumps(cfg.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
