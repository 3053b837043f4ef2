# SPDX-License-Identifier: MIT
"""Command-line interface for the sync layer."""

import asyncio
import functools
import json
import sys
import traceback
from collections.abc import Callable
from typing import Any, TypeVar

import click

from . import __version__
from .config import get_config_manager
from .enums import SyncEventKind
from .logging_config import get_status_logger, setup_logging
from .sync import ReachabilityMonitor, SyncCoordinator, SyncEvent
from .transport import HttpTransport


F = TypeVar("F", bound=Callable[..., Any])


def handle_cli_errors(func: F) -> F:
    """Decorator to handle common CLI error patterns.

    Logs the exception through the status logger (with a traceback when
    ``verbose`` is set) and exits with status code 1.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        status_logger = get_status_logger()
        verbose = kwargs.get("verbose", False)

        try:
            return func(*args, **kwargs)
        except Exception as e:
            if verbose:
                status_logger.error(f"Error in {func.__name__}: {e}")
                traceback.print_exc()
            else:
                status_logger.error(f"Error: {e}")
            sys.exit(1)

    return wrapper  # type: ignore


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit if requested."""
    if value:
        # --version is eager, so logging is not set up yet
        setup_logging()
        status_logger = get_status_logger()
        status_logger.info(f"zooquest-sync version {__version__}")
        ctx.exit(0)


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version information and exit",
)
def main() -> None:
    """ZooQuest sync - cached, offline-tolerant access to the ZooQuest API."""
    detail_logger, status_logger = setup_logging()
    detail_logger.debug("CLI initialized")


@main.command()
@handle_cli_errors
def config() -> None:
    """Show the complete current configuration."""
    print(get_config_manager().show_config())


@main.command()
@click.argument("collection")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--format",
    "output_format",
    default="text",
    type=click.Choice(["text", "json"]),
    help="Output format",
)
@handle_cli_errors
def fetch(collection: str, verbose: bool, output_format: str) -> None:
    """Fetch a collection through the cache and print it.

    COLLECTION: Collection name, e.g. animals
    """
    records = asyncio.run(_async_fetch(collection, verbose))

    if output_format == "json":
        print(json.dumps(records, indent=2, default=str))
        return

    status_logger = get_status_logger()
    status_logger.info(f"{collection}: {len(records)} records")
    for record in records:
        label = record.get("name") or record.get("title") or ""
        print(f"  {record.get('id', '?')}  {label}".rstrip())


@main.command()
@click.argument("collections", nargs=-1, required=True)
@click.option(
    "--duration",
    type=float,
    default=60.0,
    show_default=True,
    help="Seconds to keep watching",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@handle_cli_errors
def watch(collections: tuple[str, ...], duration: float, verbose: bool) -> None:
    """Keep collections in sync and report changes for a while.

    Periodic refresh, cache cleanup and reachability probing run in the
    background; every sync event is logged.

    Examples:
      zooquest-sync watch animals
      zooquest-sync watch animals events --duration 600
    """
    asyncio.run(_async_watch(list(collections), duration, verbose))


async def _async_fetch(collection: str, verbose: bool = False) -> list[dict[str, Any]]:
    status_logger = get_status_logger()
    app_config = get_config_manager().load_config()

    if verbose:
        status_logger.info(f"API base URL: {app_config.transport.base_url}")
        collection_config = app_config.collections.get(collection)
        if collection_config is not None:
            status_logger.info(
                f"Endpoint: {collection_config.endpoint} "
                f"(TTL {collection_config.ttl_seconds}s)"
            )

    async with HttpTransport(app_config.transport, app_config.collections) as transport:
        coordinator = SyncCoordinator(transport, config=app_config)
        try:
            return await coordinator.sync_collection(collection)
        finally:
            await coordinator.dispose()


async def _async_watch(
    collections: list[str], duration: float, verbose: bool = False
) -> None:
    status_logger = get_status_logger()
    app_config = get_config_manager().load_config()

    def report(event: SyncEvent) -> None:
        target = event.collection_key or "network"
        if verbose and event.record_id is not None:
            target = f"{target}/{event.record_id}"
        suffix = f" ({event.error})" if event.error else ""
        status_logger.info(f"[{event.kind.value}] {target}{suffix}")

    async with HttpTransport(app_config.transport, app_config.collections) as transport:
        async with SyncCoordinator(transport, config=app_config) as coordinator:
            for kind in SyncEventKind:
                coordinator.subscribe(kind, report)

            monitor = ReachabilityMonitor(
                coordinator,
                transport.check_health,
                scheduler=coordinator.scheduler,
                interval=app_config.transport.probe_interval_seconds,
            )
            monitor.start()

            if verbose:
                status_logger.info(
                    f"Watching {', '.join(collections)} for {duration}s; refresh every "
                    f"{app_config.sync.refresh_interval_seconds}s, reachability "
                    f"probe every {app_config.transport.probe_interval_seconds}s"
                )

            try:
                for collection in collections:
                    records = await coordinator.sync_collection(collection)
                    status_logger.info(f"{collection}: {len(records)} records")

                await asyncio.sleep(duration)
            finally:
                monitor.stop()

            status_logger.info(
                f"Stopped watching; network status: {coordinator.get_network_status()}"
            )


if __name__ == "__main__":
    main()
