"""Error handling for the ccbridge API server.

Every handled error is rendered in the OpenAI error shape
``{"error": {"message", "type", "code"}}``.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ccbridge.core.errors import ClaudeProxyError, error_body
from ccbridge.core.logging import get_logger


logger = get_logger(__name__)

INVALID_MESSAGES_MESSAGE = "messages is required and must be a non-empty array"
INVALID_MESSAGES_CODE = "invalid_messages"


def _describe_validation_errors(errors: list[dict[str, Any]]) -> str:
    parts = []
    for error in errors:
        loc = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        msg = error.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request body"


def _is_messages_error(error: dict[str, Any]) -> bool:
    loc = tuple(error.get("loc", ()))
    return loc == ("body", "messages")


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    logger.debug("error_handlers_setup_start")

    def log_error(
        request: Request, error_type: str, message: str, status_code: int
    ) -> None:
        log = logger.warning if status_code < 500 else logger.error
        log(
            "request_error",
            error_type=error_type,
            error_message=message,
            status_code=status_code,
            request_method=request.method,
            request_url=str(request.url.path),
        )

    @app.exception_handler(ClaudeProxyError)
    async def claude_proxy_error_handler(
        request: Request, exc: ClaudeProxyError
    ) -> JSONResponse:
        log_error(request, exc.error_type, exc.message, exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_error_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = list(exc.errors())
        if any(_is_messages_error(e) for e in errors):
            message, code = INVALID_MESSAGES_MESSAGE, INVALID_MESSAGES_CODE
        else:
            message, code = _describe_validation_errors(errors), None
        log_error(request, "invalid_request_error", message, 400)
        return JSONResponse(
            status_code=400,
            content=error_body(message, "invalid_request_error", code),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404:
            logger.debug(
                "http_not_found",
                request_method=request.method,
                request_url=str(request.url.path),
            )
        else:
            log_error(request, "http_error", str(exc.detail), exc.status_code)
        error_type = (
            "invalid_request_error" if exc.status_code < 500 else "server_error"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), error_type),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500, content=error_body(str(exc) or "Internal server error")
        )

    logger.debug("error_handlers_setup_completed")
