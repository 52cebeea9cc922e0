"""Structured logging setup for ccbridge.

All modules log through structlog with event-name style messages::

    logger.info("claude_process_started", request_id=request_id, pid=pid)

``setup_logging`` wires structlog and the standard library (including uvicorn)
into one processor chain, rendering with rich in a terminal and JSON otherwise.
"""

import logging
import sys
from typing import Any

import structlog
from rich.console import Console
from rich.traceback import install as install_rich_traceback
from structlog.typing import Processor


_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def _select_renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=Console(stderr=True).is_terminal,
        exception_formatter=structlog.dev.RichTracebackFormatter(),
    )


def wants_json_logs(log_format: str) -> bool:
    """Resolve a log format setting; ``auto`` is JSON unless stderr is a tty."""
    if log_format == "auto":
        return not Console(stderr=True).is_terminal
    return log_format == "json"


def setup_logging(
    json_logs: bool = False,
    log_level_name: str = "INFO",
    log_file: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog and stdlib logging.

    Args:
        json_logs: Render records as JSON lines instead of rich console output
        log_level_name: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path; records are additionally appended there as JSON

    Returns:
        A logger bound to this module
    """
    level = getattr(logging, log_level_name.upper(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    console_processors: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta
    ]
    if json_logs:
        # ConsoleRenderer formats exceptions itself
        console_processors.append(structlog.processors.format_exc_info)
    console_processors.append(_select_renderer(json_logs))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared, processors=console_processors
        )
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    structlog.processors.JSONRenderer(),
                ],
            )
        )
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level)

    # Route uvicorn through the root handlers
    for logger_name in _UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True
        uvicorn_logger.setLevel(max(level, logging.INFO))

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    if not json_logs:
        install_rich_traceback(show_locals=False)

    return get_logger(__name__)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance with the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def get_uvicorn_log_config() -> dict[str, Any]:
    """Uvicorn log config that leaves formatting to ``setup_logging``."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "loggers": {
            "uvicorn": {"level": "INFO"},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"level": "INFO"},
        },
    }
