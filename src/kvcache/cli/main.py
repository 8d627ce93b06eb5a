"""
CLI for kvcache.

Commands:
    kvcache get KEY            - Print a cached value as JSON
    kvcache set KEY VALUE      - Store a value (string, or JSON with --json)
    kvcache delete KEY         - Delete a key
    kvcache has KEY            - Exit 0 if the key is live, 1 otherwise
    kvcache clear              - Remove every entry from a driver
    kvcache clean-expired      - Sweep expired entries
    kvcache tag-keys TAG       - List keys registered under a tag
    kvcache config             - Show current configuration
    kvcache version            - Print version
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from kvcache import __version__
from kvcache.config import Settings, clear_settings_cache, get_settings
from kvcache.drivers.base import CacheProtocol
from kvcache.exceptions import DriverError, InvalidKeyError, SerializationError
from kvcache.logging import log_context, setup_logging
from kvcache.manager import CacheManager
from kvcache.serialization import ValueSerializer
from kvcache.tagged import TaggedCache

app = typer.Typer(
    name="kvcache",
    help="kvcache - inspect and maintain key-value caches",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

DriverOption = Annotated[
    Optional[str],
    typer.Option("--driver", "-d", help="Driver name (defaults to CACHE_DRIVER)"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError:
        return None


@contextmanager
def _open_driver(driver: str | None) -> Iterator[CacheProtocol]:
    """Build the requested driver and map cache errors to exit codes."""
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'kvcache config' to see the current values."
        )
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL)
    manager = CacheManager.from_settings(settings)
    name = driver or manager.default_driver

    try:
        cache = manager.driver(name)
    except DriverError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    try:
        with log_context(driver=name):
            yield cache
    except InvalidKeyError as e:
        error_console.print(f"[red]Invalid key:[/red] {e}")
        raise typer.Exit(2)


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Cache key")],
    driver: DriverOption = None,
) -> None:
    """Print a cached value as JSON."""
    missing = object()
    with _open_driver(driver) as cache:
        value = cache.get(key, missing)

    if value is missing:
        error_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(1)

    console.print_json(data=value)


@app.command("set")
def set_value(
    key: Annotated[str, typer.Argument(help="Cache key")],
    value: Annotated[str, typer.Argument(help="Value to store")],
    ttl: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", min=0, help="Time-to-live in seconds"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", "-j", help="Parse VALUE as JSON instead of storing a string"),
    ] = False,
    driver: DriverOption = None,
) -> None:
    """Store a value."""
    payload: object = value
    if as_json:
        try:
            payload = ValueSerializer.deserialize(value)
        except SerializationError:
            error_console.print("[red]Error:[/red] VALUE is not valid JSON.")
            raise typer.Exit(2)

    with _open_driver(driver) as cache:
        stored = cache.set(key, payload, ttl)

    if not stored:
        error_console.print(f"[red]Error:[/red] could not store {key}")
        raise typer.Exit(1)

    console.print(f"[green]Stored[/green] {key}")


@app.command()
def delete(
    key: Annotated[str, typer.Argument(help="Cache key")],
    driver: DriverOption = None,
) -> None:
    """Delete a key."""
    with _open_driver(driver) as cache:
        deleted = cache.delete(key)

    if deleted:
        console.print(f"[green]Deleted[/green] {key}")
    else:
        console.print(f"[dim]Nothing to delete for[/dim] {key}")


@app.command()
def has(
    key: Annotated[str, typer.Argument(help="Cache key")],
    driver: DriverOption = None,
) -> None:
    """Exit 0 if the key holds a live value, 1 otherwise."""
    with _open_driver(driver) as cache:
        present = cache.has(key)

    console.print("yes" if present else "no")
    if not present:
        raise typer.Exit(1)


@app.command()
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    driver: DriverOption = None,
) -> None:
    """Remove every entry from a driver."""
    if not yes:
        typer.confirm("Remove every cached entry?", abort=True)

    with _open_driver(driver) as cache:
        cleared = cache.clear()

    if not cleared:
        error_console.print("[red]Error:[/red] cache could not be cleared")
        raise typer.Exit(1)

    console.print("[green]Cache cleared[/green]")


@app.command("clean-expired")
def clean_expired(driver: DriverOption = None) -> None:
    """Sweep expired entries (array and file drivers)."""
    with _open_driver(driver) as cache:
        sweep = getattr(cache, "clean_expired", None)
        removed = sweep() if callable(sweep) else 0

    console.print(f"Removed [bold]{removed}[/bold] expired entries")


@app.command("tag-keys")
def tag_keys(
    tag: Annotated[str, typer.Argument(help="Tag name")],
    driver: DriverOption = None,
) -> None:
    """List the keys registered under a tag."""
    with _open_driver(driver) as cache:
        keys = TaggedCache(cache).get_keys_by_tag(tag)

    if not keys:
        console.print(f"[dim]No keys registered under[/dim] {tag}")
        return

    for key in keys:
        console.print(key)


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]kvcache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check the CACHE_* and REDIS_* environment variables or .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"kvcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
