"""Command-line entry point for Slackspin."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from .app_context import AppContext, determine_paths, load_context
from .config import ConfigError, ConfigPaths, bootstrap, load_global_config
from .logging import configure_logging, get_logger
from .supervisor import Supervisor
from .web import create_app

app = typer.Typer(help="Keep a Slack profile photo and status in motion.")
console = Console()

CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    dir_okay=True,
    file_okay=False,
    resolve_path=True,
    envvar="SLACKSPIN_CONFIG_DIR",
    help="Base directory for config files (defaults to ~/.slackspin).",
)


def _determine_default_log_level(config_dir: Optional[Path]) -> str:
    paths = determine_paths(config_dir)
    try:
        return load_global_config(paths.global_config).runtime.log_level
    except ConfigError:
        return "INFO"


def _bootstrap_logging(
    ctx: typer.Context,
    verbose: bool,
    json_logs: bool,
    log_file: Optional[Path],
) -> None:
    """Initialise logging once per CLI invocation."""

    if ctx.obj is None:
        ctx.obj = {}

    if ctx.obj.get("_logging_configured"):
        return

    level = "DEBUG" if verbose else "INFO"
    configure_logging(level=level, json_output=json_logs, log_file=log_file)
    ctx.obj["logger"] = get_logger("slackspin.cli")
    ctx.obj["log_level"] = level
    ctx.obj["json_logs"] = json_logs
    ctx.obj["log_file_path"] = log_file
    ctx.obj["force_log_level"] = verbose
    ctx.obj["_logging_configured"] = True


@app.callback(invoke_without_command=True)
def cli(  # noqa: D401 - Typer generates help text.
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON-formatted logs."),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        dir_okay=False,
        file_okay=True,
        writable=True,
        resolve_path=True,
        help="Optional file to append structured logs to.",
    ),
) -> None:
    """Slackspin command group."""

    _bootstrap_logging(ctx, verbose, json_logs, log_file)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _logger(ctx: typer.Context):
    return ctx.obj.get("logger", get_logger("slackspin.cli"))


def _maybe_update_log_level(ctx: typer.Context, config_dir: Optional[Path]) -> None:
    if ctx.obj.get("force_log_level"):
        return

    desired = _determine_default_log_level(config_dir)
    if desired != ctx.obj.get("log_level"):
        configure_logging(
            level=desired,
            json_output=ctx.obj.get("json_logs", False),
            log_file=ctx.obj.get("log_file_path"),
        )
        ctx.obj["logger"] = get_logger("slackspin.cli")
        ctx.obj["log_level"] = desired


def _load(ctx: typer.Context, config_dir: Optional[Path], command: str) -> AppContext:
    log = _logger(ctx)
    _maybe_update_log_level(ctx, config_dir)
    try:
        return load_context(determine_paths(config_dir))
    except ConfigError as exc:
        log.error(f"{command}.failed", error=str(exc))
        typer.echo(f"Error loading configuration: {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def init(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite existing config.yml"),
) -> None:
    """Write a starter configuration file."""

    log = _logger(ctx)
    paths = ConfigPaths.from_base_dir(config_dir) if config_dir else ConfigPaths.default()
    report = bootstrap(paths, overwrite=force)

    typer.echo(f"Configuration directory: {paths.base_dir}")
    if report.global_config_created:
        if report.global_config_overwritten:
            typer.echo(f"Global config overwritten at: {paths.global_config}")
        else:
            typer.echo(f"Global config created at: {paths.global_config}")
            typer.echo("Update Spotify and Slack credentials before serving.")
    else:
        typer.echo(f"Global config already exists at: {paths.global_config}")
        typer.echo("Use --force to regenerate with default values.")

    log.info(
        "init.completed",
        base_dir=str(paths.base_dir),
        global_config=str(paths.global_config),
        force=force,
        base_created=report.base_created,
        global_config_created=report.global_config_created,
        global_config_overwritten=report.global_config_overwritten,
    )


@app.command()
def serve(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to runtime.host)."),
    port: Optional[int] = typer.Option(None, help="Bind port (defaults to runtime.port)."),
    scheduler: Optional[bool] = typer.Option(
        None,
        "--scheduler/--no-scheduler",
        help="Run periodic updates alongside the API (defaults to runtime.scheduler_enabled).",
    ),
    reload: Optional[bool] = typer.Option(
        None,
        "--reload/--no-reload",
        help="Reload rotation images and statuses when config.yml changes.",
    ),
) -> None:
    """Serve the HTTP API and, unless disabled, the periodic scheduler."""

    context = _load(ctx, config_dir, "serve")
    runtime = context.global_config.runtime
    start_scheduler = runtime.scheduler_enabled if scheduler is None else scheduler
    hot_reload = runtime.hot_reload if reload is None else reload

    api = create_app(context, start_scheduler=start_scheduler, hot_reload=hot_reload)
    _logger(ctx).info(
        "serve.start",
        mode=runtime.mode,
        scheduler=start_scheduler,
        auth_url=f"{context.global_config.spotify.base_url.rstrip('/')}/auth",
    )
    uvicorn.run(
        api,
        host=host or runtime.host,
        port=port or runtime.port,
        log_config=None,
        log_level=ctx.obj.get("log_level", "INFO").lower(),
    )


@app.command()
def run(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    reload: Optional[bool] = typer.Option(
        None,
        "--reload/--no-reload",
        help="Reload rotation images and statuses when config.yml changes.",
    ),
) -> None:
    """Run the scheduler without the HTTP API (rotation deployments)."""

    context = _load(ctx, config_dir, "run")
    hot_reload = context.global_config.runtime.hot_reload if reload is None else reload
    supervisor = Supervisor(context=context, logger=get_logger("slackspin.supervisor"))

    async def _main() -> None:
        try:
            await supervisor.run_forever(hot_reload=hot_reload)
        finally:
            await context.aclose()

    asyncio.run(_main())


@app.command()
def tick(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Run a single update cycle and print its summary."""

    context = _load(ctx, config_dir, "tick")
    supervisor = Supervisor(context=context, logger=get_logger("slackspin.supervisor"))

    async def _main():
        try:
            return await supervisor.run_tick()
        finally:
            await context.aclose()

    summary = asyncio.run(_main())
    typer.echo(json.dumps(summary, indent=2, default=str))
    if summary.get("status") == "failed":
        raise typer.Exit(code=1)


@app.command()
def show(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Show the resolved configuration."""

    context = _load(ctx, config_dir, "show")
    config = context.global_config

    table = Table(title="Slackspin Configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Config file", str(context.paths.global_config))
    table.add_row("Mode", config.runtime.mode)
    table.add_row("Spotify client", "configured" if config.spotify.configured else "missing")
    table.add_row("Slack token", "configured" if config.slack.configured else "missing")
    table.add_row("Redirect URI", config.spotify.redirect_uri)
    table.add_row("Poll interval", f"{config.now_playing.interval_seconds}s")
    table.add_row("Rotation interval", f"{config.rotation.interval_seconds:g}s")
    table.add_row("Images", str(len(config.rotation.images)))
    table.add_row("Statuses", str(len(config.rotation.statuses)))
    console.print(table)

    if config.rotation.statuses:
        statuses = Table(title="Rotation Statuses")
        statuses.add_column("#", justify="right")
        statuses.add_column("Text")
        statuses.add_column("Emoji")
        for index, entry in enumerate(config.rotation.statuses):
            statuses.add_row(str(index), entry.text, entry.emoji)
        console.print(statuses)

    asyncio.run(context.aclose())
