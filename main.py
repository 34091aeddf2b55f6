"""botswarm entry point.

Spawns a pool of bot sessions against one game server for load testing
and hands the terminal to an operator console.

Usage:
    python main.py <host[:port]> <version> [max_bots=10] [delay_ms=3000]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import yaml

from botswarm.config import SwarmConfig, build_config
from botswarm.connection import ConnectionEstablisher
from botswarm.console import CommandConsole
from botswarm.formatter import (
    format_final_stats,
    format_probe,
    format_stats_line,
    format_usage,
)
from botswarm.logging_utils import configure_logging
from botswarm.models import Endpoint
from botswarm.pool import SessionPool
from botswarm.probe import probe
from botswarm.proxy_pool import ProxyPool
from botswarm.stats import Stats
from botswarm.storage import DataDirs, save_config_snapshot, write_proxy_list

logger = logging.getLogger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace | None:
    """Parse the command line; None when required arguments are missing."""
    parser = argparse.ArgumentParser(
        prog="botswarm",
        description="Game server load tester",
        usage=format_usage(),
    )
    parser.add_argument("target", help="Server address as host[:port]")
    parser.add_argument("version", help="Protocol version passed to the server")
    parser.add_argument("max_bots", nargs="?", type=int, default=None)
    parser.add_argument("delay_ms", nargs="?", type=int, default=None)
    parser.add_argument("--config", help="Optional YAML configuration file")
    parser.add_argument(
        "--no-proxy", action="store_true", help="Connect every bot directly"
    )

    positionals = 0
    skip_value = False
    for arg in argv:
        if skip_value:
            skip_value = False
        elif arg == "--config":
            skip_value = True
        elif not arg.startswith("-"):
            positionals += 1
    if positionals < 2:
        return None
    return parser.parse_args(argv)


async def setup_proxies(
    config: SwarmConfig, dirs: DataDirs, stats: Stats, establisher: ConnectionEstablisher
) -> ProxyPool:
    """Collect and verify relays; an empty pool means direct connections."""
    proxies = ProxyPool(stats)
    if not config.proxy.enabled or not config.proxy.sources:
        logger.info("Proxy phase skipped; bots will connect directly")
        return proxies

    await proxies.collect(config.proxy.sources, timeout=config.proxy.fetch_timeout_seconds)
    write_proxy_list(dirs, sorted(proxies.candidates), "proxies")

    target = Endpoint(config.target.host, config.target.port)
    await proxies.verify(
        target,
        want_count=config.want_proxies,
        tester=establisher.test_relay,
        batch_size=config.proxy.batch_size,
        timeout=config.proxy.verify_timeout_seconds,
    )
    write_proxy_list(dirs, proxies.verified, f"working_{config.target.host}")

    if len(proxies) < config.spawn.max_bots:
        logger.warning(
            "Only %d working proxies for %d bots; relays will be shared",
            len(proxies),
            config.spawn.max_bots,
        )
    return proxies


async def stats_refresh_loop(pool: SessionPool, interval: float) -> None:
    while pool.running:
        await asyncio.sleep(interval)
        logger.info(format_stats_line(pool.stats, pool.active_count(), len(pool)))


async def spawn_after_delay(pool: SessionPool, config: SwarmConfig) -> None:
    await asyncio.sleep(config.spawn.initial_delay_ms / 1000)
    await pool.spawn(
        config.spawn.max_bots,
        config.spawn.interval_ms / 1000,
        config.spawn.jitter_ms / 1000,
    )


def _log_uncaught(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    exc = context.get("exception")
    logger.error("Uncaught error: %s", exc or context.get("message"), exc_info=exc)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args is None:
        print(format_usage())
        return 0

    # Load config
    try:
        config = build_config(
            args.target, args.version, args.max_bots, args.delay_ms, args.config
        )
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        # pydantic's ValidationError is a ValueError
        logger.error("Invalid configuration: %s", e)
        print(format_usage())
        return 2
    if args.no_proxy:
        config.proxy.enabled = False

    dirs = DataDirs(base=Path(config.data_dir)).create()
    configure_logging(config.log_level, dirs.logs)
    save_config_snapshot(dirs, config)

    logger.info(
        "Target %s:%d version %s, %d bot(s), spawn every %dms",
        config.target.host,
        config.target.port,
        config.target.version,
        config.spawn.max_bots,
        config.spawn.interval_ms,
    )

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_uncaught)

    # Server status
    result = await probe(
        config.target.host, config.target.port, config.connection.probe_timeout_seconds
    )
    if result.reachable:
        logger.info(format_probe(config.target.host, config.target.port, result))
    else:
        logger.warning(format_probe(config.target.host, config.target.port, result))

    # Create components
    stats = Stats()
    establisher = ConnectionEstablisher(config.connection.connect_timeout_seconds)
    proxies = await setup_proxies(config, dirs, stats, establisher)
    pool = SessionPool(config, stats=stats, proxies=proxies, establisher=establisher)
    console = CommandConsole(pool, config.console)

    # Signal handling for graceful shutdown
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    console_task = asyncio.create_task(console.run())
    tasks = [asyncio.create_task(spawn_after_delay(pool, config))]
    if config.console.stats_refresh_seconds > 0:
        tasks.append(
            asyncio.create_task(
                stats_refresh_loop(pool, config.console.stats_refresh_seconds)
            )
        )
    print("Type 'help' for available commands")

    # Wait for exit command, end of input or signal
    signal_wait = asyncio.create_task(stop_event.wait())
    await asyncio.wait(
        {console_task, signal_wait}, return_when=asyncio.FIRST_COMPLETED
    )
    if console_task.done() and not console_task.cancelled() and console_task.exception():
        logger.error("Console stopped: %s", console_task.exception())

    # Graceful shutdown
    logger.info("Shutting down...")
    final = await pool.shutdown_all()
    if not console.exit_requested.is_set():
        print(format_final_stats(final))

    for task in (*tasks, console_task, signal_wait):
        task.cancel()
    await asyncio.gather(*tasks, console_task, signal_wait, return_exceptions=True)

    logger.info("Swarm stopped.")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
