"""CLI entry point for the config watcher."""

from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from config_watcher.errors import ConfigInvalid, DependencyMissing, LockfileHeld, WatcherError

app = typer.Typer(
    name="config-watcher",
    help="Keep containerized services in sync with their Git configuration repositories",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Services config file (JSON or YAML). Defaults to $SERVICES_CONFIG, then legacy env vars",
    ),
]


@app.callback()
def main_callback(
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Hide git/docker commands being executed"),
    ] = False,
) -> None:
    """Config watcher."""
    from config_watcher.utils.cmd import set_show_commands

    set_show_commands(not quiet)


def _handle_error(error: WatcherError, exit_code: int = 1) -> None:
    """Print a watcher error with rich formatting and exit."""
    console.print(f"[red]Error ({error.code}):[/red] {error.message}")
    raise typer.Exit(exit_code)


def _load(config: Path | None):
    from config_watcher.model.loader import load_config

    try:
        return load_config(config)
    except ConfigInvalid as e:
        _handle_error(e)


def _on_off(value: bool) -> str:
    return "enabled" if value else "disabled"


def _effective_options(app_config) -> list[dict[str, str]]:
    settings = app_config.global_settings
    rows = []
    for service in app_config.services:
        compose_dir = service.compose_dir(settings)
        rows.append(
            {
                "name": service.name,
                "type": service.type_tag,
                "container": service.container_name,
                "repo_url": service.repo_url,
                "branch": service.effective_branch(settings),
                "local_path": str(service.local_path),
                "docker_compose": _on_off(service.effective_use_docker_compose(settings)),
                "compose_dir": str(compose_dir) if compose_dir else "-",
                "restart_command": service.restart_command or "-",
                "validation_command": service.validation_command or "-",
                "auto_fix": _on_off(service.effective_auto_fix(settings)),
                "fix_permissions": _on_off(service.effective_fix_permissions(settings)),
                "monitor_logs": _on_off(service.effective_monitor_logs(settings)),
                "restart": "disabled" if service.effective_disable_restart(settings) else "enabled",
                "healthcheck_url": service.healthcheck_url or "-",
            }
        )
    return rows


@app.command()
def run(
    config: ConfigOption = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Watch every configured service until SIGINT/SIGTERM.

    [bold]Example:[/bold]
        config-watcher run --config /app/services.yml
    """
    from config_watcher.log import setup_logging
    from config_watcher.supervisor import Supervisor
    from config_watcher.utils.preflight import check_dependencies

    app_config = _load(config)
    log = setup_logging(verbose or app_config.verbose)
    log.info("Starting config watcher with %d service(s)", len(app_config.services))

    try:
        check_dependencies(need_ssh_keyscan=app_config.ssh_private_key is not None)
    except DependencyMissing as e:
        _handle_error(e)

    try:
        code = Supervisor(app_config).run()
    except LockfileHeld as e:
        _handle_error(e, exit_code=2)

    raise typer.Exit(code)


@app.command(name="show-config")
def show_config(
    config: ConfigOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table or yaml"),
    ] = "table",
) -> None:
    """Show the effective options of every service.

    [bold]Example:[/bold]
        config-watcher show-config --format yaml
    """
    if output_format not in ("table", "yaml"):
        console.print(f"[red]Error:[/red] Unknown format '{output_format}'. Use 'table' or 'yaml'.")
        raise typer.Exit(1)

    app_config = _load(config)
    rows = _effective_options(app_config)

    if output_format == "yaml":
        settings = app_config.global_settings
        document = {
            "global_settings": {
                "watch_interval": settings.watch_interval,
                "startup_grace_period": settings.grace_seconds,
                "lockfile": str(app_config.lockfile),
            },
            "services": rows,
        }
        console.print(
            yaml.safe_dump(document, sort_keys=False),
            end="",
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
        return

    settings = app_config.global_settings
    console.print(
        f"Watch interval: {settings.watch_interval}s, "
        f"startup grace: {settings.grace_seconds}s, lockfile: {app_config.lockfile}"
    )
    for row in rows:
        table = Table(title=f"Service: {row['name']}")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in row.items():
            if key == "name":
                continue
            table.add_row(key.replace("_", " ").capitalize(), value)
        console.print(table)


@app.command()
def check(config: ConfigOption = None) -> None:
    """Validate the configuration and required tools without starting.

    [bold]Example:[/bold]
        config-watcher check --config /app/services.json
    """
    from config_watcher.utils.preflight import check_dependencies

    app_config = _load(config)
    problems = False
    for service in app_config.services:
        if not service.restart_target_defined(app_config.global_settings):
            console.print(f"[yellow]Warning:[/yellow] Service '{service.name}' has no restart target")
            problems = True

    try:
        check_dependencies(need_ssh_keyscan=app_config.ssh_private_key is not None)
    except DependencyMissing as e:
        _handle_error(e)

    if problems:
        console.print("[red]Configuration has services that cannot be reconciled[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Configuration OK[/green] ({len(app_config.services)} service(s))")


@app.command()
def version() -> None:
    """Show version information."""
    from config_watcher import __version__

    console.print(f"config-watcher version {__version__}")


def main() -> None:
    app()
