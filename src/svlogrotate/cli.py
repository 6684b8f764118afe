"""Typer CLI: init, run, rotate, status commands."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from svlogrotate import __version__

app = typer.Typer(
    name="svlogrotate",
    help="Rotate the log files of supervised processes by size and schedule.",
    no_args_is_help=True,
)
console = Console()

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"svlogrotate v{__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


def _build(project_dir: Path):
    """Load, validate and wire the service. Exits 1 on invalid config."""
    from svlogrotate.config import ConfigError, build_config, load_config
    from svlogrotate.scheduler import RotationService
    from svlogrotate.supervisor import Pm2Client

    try:
        config = build_config(load_config(project_dir))
    except ConfigError as exc:
        for e in exc.errors:
            console.print(f"  [red]Config error: {e}[/red]")
        raise typer.Exit(1)

    client = Pm2Client(command=config.supervisor_command, home=config.supervisor_home)
    return RotationService(config, client)


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version.", callback=_version_callback, is_eager=True
    ),
) -> None:
    """svlogrotate - log rotation for supervised processes."""


@app.command()
def init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
    project_dir: Path = typer.Option(Path.cwd(), "--dir", help="Directory to hold .svlogrotate/"),
) -> None:
    """Write a default configuration file."""
    from svlogrotate.config import CONFIG_DIR, DEFAULT_CONFIG, save_config, validate_config
    from svlogrotate.migration import migrate_config
    from svlogrotate.utils import deep_merge, load_json

    console.print(Panel("[bold]svlogrotate init[/bold]", style="blue"))

    config_path = project_dir / CONFIG_DIR / "config.json"
    if config_path.exists() and not force:
        existing = load_json(config_path)
        config = deep_merge(DEFAULT_CONFIG, migrate_config(existing))
        console.print("  [yellow]Merged with existing config[/yellow]")
    else:
        config = DEFAULT_CONFIG.copy()
        console.print("  [green]Created default config[/green]")

    errors = validate_config(config)
    if errors:
        for e in errors:
            console.print(f"  [red]Config error: {e}[/red]")
        raise typer.Exit(1)

    save_config(config, project_dir)
    console.print(f"  Config: [cyan]{config_path}[/cyan]")


@app.command()
def run(
    project_dir: Path = typer.Option(Path.cwd(), "--dir", help="Directory holding .svlogrotate/"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """Connect to the supervisor and rotate logs until interrupted."""
    from svlogrotate.config import ConfigError
    from svlogrotate.supervisor import SupervisorError

    _setup_logging(verbose)
    logger = logging.getLogger("svlogrotate")
    service = _build(project_dir)

    logger.info("Starting svlogrotate v%s", __version__)
    service.log_config()

    try:
        asyncio.run(service.run())
    except (ConfigError, SupervisorError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass

    console.print("\n[bold]svlogrotate stopped.[/bold]")


@app.command()
def rotate(
    force: bool = typer.Option(False, "--force", help="Rotate every non-empty file regardless of size"),
    project_dir: Path = typer.Option(Path.cwd(), "--dir", help="Directory holding .svlogrotate/"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """Run a single rotation pass now."""
    from svlogrotate.stats import format_bytes

    _setup_logging(verbose)
    service = _build(project_dir)

    rotated = asyncio.run(service.run_pass(force, "manual"))
    stats = service.stats

    table = Table(show_header=True, show_edge=False)
    table.add_column("Rotated file")
    for path in rotated:
        table.add_row(path)
    if rotated:
        console.print(table)
    else:
        console.print("  [dim]Nothing to rotate[/dim]")

    console.print(
        f"  Watched: [cyan]{stats.files_count}[/cyan] files, "
        f"{format_bytes(stats.global_logs_size())}  "
        f"Deleted: {stats.deletions}  Errors: {stats.errors}"
    )
    if stats.errors:
        raise typer.Exit(1)


@app.command()
def status(
    project_dir: Path = typer.Option(Path.cwd(), "--dir", help="Directory holding .svlogrotate/"),
) -> None:
    """Show configuration and schedule."""
    from svlogrotate.config import (
        ConfigError,
        build_config,
        get_config_path,
        load_config,
        validate_config,
    )
    from svlogrotate.scheduler import next_cron_fire
    from svlogrotate.stats import format_bytes
    from svlogrotate.supervisor import resolve_supervisor_home, supervisor_log_paths

    console.print(Panel("[bold]svlogrotate status[/bold]", style="blue"))

    config_path = get_config_path(project_dir)
    try:
        raw = load_config(project_dir)
    except ConfigError as exc:
        console.print(f"  Config: [red]unreadable[/red] ({config_path})")
        for e in exc.errors:
            console.print(f"    [red]{e}[/red]")
        raise typer.Exit(1)
    errors = validate_config(raw)

    if not config_path.exists():
        console.print("  Config: [yellow]not found[/yellow], using defaults (run `svlogrotate init`)")
    elif errors:
        console.print(f"  Config: [red]invalid ({len(errors)} errors)[/red]")
    else:
        console.print(f"  Config: [green]valid[/green] ({config_path})")

    if errors:
        for e in errors:
            console.print(f"    [red]{e}[/red]")
        raise typer.Exit(1)

    config = build_config(raw)
    home = config.supervisor_home or resolve_supervisor_home()

    table = Table(show_header=True, show_edge=False)
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("max_size", format_bytes(config.max_size))
    table.add_row("worker_interval", f"{config.worker_interval:g}s")
    table.add_row("rotate_interval", config.rotate_interval)
    table.add_row("retain", "all" if config.retain is None else str(config.retain))
    table.add_row("compress", str(config.compress))
    table.add_row("date_format", config.date_format)
    table.add_row("tz", config.tz or "local")
    table.add_row("rotate_module", str(config.rotate_module))
    table.add_row("supervisor_home", home or "[dim]unknown[/dim]")
    console.print(table)

    console.print(f"  Next forced rotation: [cyan]{next_cron_fire(config.rotate_interval, config.tz)}[/cyan]")
    if home:
        for path in supervisor_log_paths(home):
            console.print(f"  Supervisor log: {path}")
