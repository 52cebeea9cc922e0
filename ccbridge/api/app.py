"""FastAPI application factory for the ccbridge server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ccbridge import __version__
from ccbridge.api.middleware.errors import setup_error_handlers
from ccbridge.api.routes.chat import router as chat_router
from ccbridge.api.routes.health import router as health_router
from ccbridge.api.routes.models import router as models_router
from ccbridge.config.settings import Settings, get_settings
from ccbridge.core.logging import get_logger, setup_logging, wants_json_logs
from ccbridge.services.orchestrator import ProcessFactory, ResponseOrchestrator


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log startup diagnostics; the server starts even without a Claude CLI."""
    settings: Settings = app.state.settings
    cli_path = settings.claude.find_cli()
    logger.info(
        "server_starting",
        version=__version__,
        url=settings.server_url,
        cwd=settings.claude.resolve_cwd(),
    )
    if cli_path:
        logger.info("claude_cli_found", cli_path=cli_path)
    else:
        logger.warning(
            "claude_cli_not_found",
            searched_paths=settings.claude.get_searched_paths(),
        )
    yield
    orchestrator: ResponseOrchestrator = app.state.orchestrator
    await orchestrator.shutdown()
    logger.info("server_stopped")


def create_app(
    settings: Settings | None = None,
    process_factory: ProcessFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to ``get_settings()``.
        process_factory: Builds the backing process for a request id; defaults to
            a ``ClaudeCLIProcess`` per request.
    """
    if settings is None:
        settings = get_settings()
        setup_logging(
            json_logs=wants_json_logs(settings.logging.format),
            log_level_name=settings.logging.level,
            log_file=settings.logging.file,
        )

    app = FastAPI(
        title="ccbridge",
        description="OpenAI-compatible chat completions backed by the Claude Code CLI",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = ResponseOrchestrator(
        settings.claude, process_factory=process_factory
    )

    setup_error_handlers(app)

    app.include_router(chat_router, prefix="/v1", tags=["chat"])
    app.include_router(models_router, prefix="/v1", tags=["models"])
    app.include_router(health_router, tags=["health"])

    return app
