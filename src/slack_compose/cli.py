from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .bus import BusError
from .config import ConfigError, Settings
from .logging import get_logger, setup_logging
from .projects import load_projects
from .service import run_service

logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Route Slack commands, reactions and buttons to docker compose via Poppit.",
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    if ctx.invoked_subcommand is None:
        run()


@app.command("run", help="Start the event router (default).")
def run() -> None:
    settings = _load_settings()
    setup_logging(level=settings.log_level, json=settings.log_json)
    logger.info("service.starting")
    try:
        anyio.run(run_service, settings)
    except (ConfigError, BusError) as e:
        logger.error("service.startup_failed", error=str(e))
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("service.interrupted")
        raise typer.Exit(code=130)


@app.command("projects", help="List the configured projects.")
def projects(
    config: Path = typer.Option(
        Path("projects.json"),
        "--config",
        envvar="PROJECT_CONFIG_PATH",
        help="Project config file (JSON list of {name, working_dir}).",
    ),
) -> None:
    setup_logging(level="warning")
    try:
        registry = load_projects(config.expanduser())
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    if not len(registry):
        typer.echo(f"no projects configured in {config}")
        return
    for project in registry:
        typer.echo(f"{project.name}\t{project.working_dir}")


def main() -> None:
    app()
