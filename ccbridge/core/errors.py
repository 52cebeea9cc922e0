"""Custom exceptions for the ccbridge server."""

from typing import Any

from ccbridge.models.openai import OpenAIErrorResponse


class ClaudeProxyError(Exception):
    """Base exception for ccbridge errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "server_error",
        status_code: int = 500,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.code = code

    def to_error_body(self) -> dict[str, Any]:
        """Render as an OpenAI-style error document."""
        return error_body(self.message, self.error_type, self.code)


class ValidationError(ClaudeProxyError):
    """Validation error (400)."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            status_code=400,
            code=code,
        )


class ProcessStartError(ClaudeProxyError):
    """The Claude CLI could not be launched (500)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, error_type="server_error", status_code=500)


class ServiceUnavailableError(ClaudeProxyError):
    """Service unavailable error (503)."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(
            message=message, error_type="service_unavailable_error", status_code=503
        )


def error_body(
    message: str, error_type: str = "server_error", code: str | None = None
) -> dict[str, Any]:
    """Build an OpenAI error document ``{"error": {message, type, code}}``."""
    return OpenAIErrorResponse.create(message, error_type, code).model_dump()
