"""Main entry point for the ccbridge command line."""

import asyncio
import os
from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from ccbridge._version import __version__
from ccbridge.claude_cli.detection import detect_cli_version
from ccbridge.config.settings import ConfigurationError, Settings
from ccbridge.core.logging import (
    get_logger,
    get_uvicorn_log_config,
    setup_logging,
    wants_json_logs,
)

from .helpers import bold, get_rich_toolkit, warning


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        toolkit = get_rich_toolkit()
        toolkit.print(f"ccbridge {__version__}", tag="version")
        raise typer.Exit()


def validate_log_level(value: str | None) -> str | None:
    if value is None:
        return None
    if value.upper() not in VALID_LOG_LEVELS:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    return value.upper()


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)


@app.callback()
def app_main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """OpenAI-compatible chat completions backed by the Claude Code CLI."""


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to TOML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
]


def _export_for_workers(config: Path | None, settings: Settings) -> None:
    # uvicorn builds the app through the factory, possibly in a reload subprocess
    if config is not None:
        os.environ["CONFIG_FILE"] = str(config)
    os.environ["SERVER__HOST"] = settings.server.host
    os.environ["SERVER__PORT"] = str(settings.server.port)
    os.environ["LOGGING__LEVEL"] = settings.logging.level


@app.command()
def serve(
    config: ConfigOption = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host to bind the server to"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to run the server on"),
    ] = None,
    reload: Annotated[
        bool | None,
        typer.Option("--reload/--no-reload", help="Enable auto-reload for development"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            callback=validate_log_level,
        ),
    ] = None,
) -> None:
    """Start the ccbridge API server."""
    toolkit = get_rich_toolkit()
    try:
        settings = Settings.from_config(
            config_path=config,
            server={"host": host, "port": port, "reload": reload},
            logging={"level": log_level},
        )
    except ConfigurationError as e:
        toolkit.print(f"Configuration error: {e}", tag="error")
        raise typer.Exit(1) from e

    setup_logging(
        json_logs=wants_json_logs(settings.logging.format),
        log_level_name=settings.logging.level,
        log_file=settings.logging.file,
    )
    logger = get_logger(__name__)
    logger.debug(
        "configuration_loaded",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level,
        cli_path=settings.claude.cli_path,
    )

    toolkit.print_title("Starting ccbridge", tag="server")
    toolkit.print(f"Listening on {bold(settings.server_url)}", tag="server")
    if settings.claude.find_cli() is None:
        toolkit.print(
            warning("Claude CLI not found; requests will fail until it is installed"),
            tag="warning",
        )

    _export_for_workers(config, settings)
    try:
        uvicorn.run(
            app="ccbridge.api.app:create_app",
            factory=True,
            host=settings.server.host,
            port=settings.server.port,
            reload=settings.server.reload,
            log_config=get_uvicorn_log_config(),
            access_log=False,
            server_header=False,
            reload_includes=["ccbridge"] if settings.server.reload else None,
        )
    except OSError as e:
        toolkit.print(
            f"Server startup failed (port/permission issue): {e}", tag="error"
        )
        raise typer.Exit(1) from e


@app.command()
def check(config: ConfigOption = None) -> None:
    """Verify that the Claude CLI can be found and run."""
    toolkit = get_rich_toolkit()
    try:
        settings = Settings.from_config(config_path=config)
    except ConfigurationError as e:
        toolkit.print(f"Configuration error: {e}", tag="error")
        raise typer.Exit(1) from e

    cli_path = settings.claude.find_cli()
    if cli_path is None:
        toolkit.print("Claude CLI not found", tag="error")
        for path in settings.claude.get_searched_paths():
            toolkit.print(f"searched: {path}", tag="info")
        toolkit.print(
            "Install with: npm install -g @anthropic-ai/claude-code", tag="info"
        )
        raise typer.Exit(1)

    version = asyncio.run(detect_cli_version(cli_path))
    if version is None:
        toolkit.print(f"{cli_path} did not report a version", tag="error")
        raise typer.Exit(1)

    toolkit.print(f"{bold(cli_path)} {version}", tag="claude")
    toolkit.print(f"working directory: {settings.claude.resolve_cwd()}", tag="config")
    toolkit.print("Claude CLI is ready", tag="success")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
