"""Command-line interface for swcache.

Inspects, pre-installs and clears the partitions persisted in a SQLite database.
"""

import logging
from pathlib import Path
from typing import Optional

import anyio
import click
from rich.console import Console
from rich.table import Table

from swcache._config import ControllerConfig
from swcache._core._storages._async_sqlite import AsyncSqliteCacheStorage
from swcache._exceptions import InstallationError
from swcache._network import AsyncHttpxFetcher
from swcache._registration import AsyncServiceWorkerRegistration

logger = logging.getLogger("swcache.cli")

# Global console for Rich output
console = Console()

DEFAULT_DATABASE = ".cache/swcache/swcache.db"


def open_storage(ctx: click.Context) -> AsyncSqliteCacheStorage:
    return AsyncSqliteCacheStorage(database_path=Path(ctx.obj["database"]))


@click.group()
@click.option(
    "--database",
    "-d",
    type=click.Path(dir_okay=False),
    default=DEFAULT_DATABASE,
    show_default=True,
    envvar="SWCACHE_DATABASE",
    help="SQLite database holding the partitions (or the SWCACHE_DATABASE env var)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log what the controller and storages do")
@click.pass_context
def cli(ctx, database, verbose):
    """swcache - Manage offline cache partitions."""
    ctx.ensure_object(dict)
    ctx.obj["database"] = database
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@cli.command("list")
@click.pass_context
def list_partitions(ctx):
    """List partitions with the number of entries they hold."""

    async def run() -> Table:
        storage = open_storage(ctx)
        try:
            table = Table(title="Partitions")
            table.add_column("Name", style="cyan")
            table.add_column("Entries", justify="right")
            for name in await storage.keys():
                table.add_row(name, str(await storage.count(name)))
            return table
        finally:
            await storage.close()

    table = anyio.run(run)
    if table.row_count == 0:
        console.print("[yellow]No partitions found[/yellow]")
        return
    console.print(table)


@cli.command("show")
@click.argument("name")
@click.pass_context
def show_partition(ctx, name):
    """Show the requests stored in partition NAME."""

    async def run() -> Optional[Table]:
        storage = open_storage(ctx)
        try:
            if not await storage.has(name):
                return None
            cache = await storage.open(name)
            table = Table(title=name)
            table.add_column("Method", style="cyan")
            table.add_column("URL")
            for request in await cache.keys():
                table.add_row(request.method, request.url)
            return table
        finally:
            await storage.close()

    table = anyio.run(run)
    if table is None:
        raise click.ClickException(f"Partition not found: {name}")
    console.print(table)


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def clear_partitions(ctx, yes):
    """Delete every partition, whatever version created it."""
    if not yes:
        click.confirm("Delete every cached partition?", abort=True)

    async def run() -> int:
        storage = open_storage(ctx)
        try:
            names = await storage.keys()
            for name in names:
                await storage.delete(name)
            return len(names)
        finally:
            await storage.close()

    deleted = anyio.run(run)
    console.print(f"[green]✓[/green] Deleted {deleted} partition(s)")


@cli.command("install")
@click.option("--origin", required=True, help="Origin to fetch the manifest from, e.g. https://example.org")
@click.option("--version", "version", default=None, help="Controller version (default: SWCACHE_VERSION or v1)")
@click.pass_context
def install(ctx, origin, version):
    """Install and activate a controller version against a live origin."""
    overrides = {"origin": origin}
    if version is not None:
        overrides["version"] = version
    config = ControllerConfig.from_env(**overrides)

    async def run() -> None:
        storage = open_storage(ctx)
        registration = AsyncServiceWorkerRegistration(storage=storage)
        try:
            async with AsyncHttpxFetcher(config.origin) as fetcher:
                async with registration.create_controller(config, fetcher=fetcher) as controller:
                    await registration.register(controller)
        finally:
            await storage.close()

    try:
        anyio.run(run)
    except InstallationError as exc:
        logger.debug(f"Installation failed: {exc!r}")
        raise click.ClickException(str(exc)) from exc

    console.print(f"[green]✓[/green] Installed version {config.version} from {config.origin}")
    for name in config.cache_names:
        console.print(f"  {name}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
