"""OpenAI-format streaming formatter utilities.

Formats Server-Sent Events for OpenAI-compatible ``chat.completion.chunk`` streams.
A stream opens with a comment frame, carries one ``data:`` frame per chunk and ends
with the literal ``data: [DONE]`` sentinel.
"""

import json
from typing import Any

from ccbridge.core.errors import error_body


class OpenAIStreamingFormatter:
    """Formats streaming responses to match OpenAI's SSE format."""

    @staticmethod
    def format_data_event(data: dict[str, Any]) -> str:
        """
        Format a data event for OpenAI-compatible Server-Sent Events.

        Args:
            data: Event data dictionary

        Returns:
            Formatted SSE string
        """
        json_data = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return f"data: {json_data}\n\n"

    @staticmethod
    def format_comment(comment: str = "ok") -> str:
        """Format an SSE comment frame; clients ignore it, proxies flush it."""
        return f":{comment}\n\n"

    @staticmethod
    def format_content_chunk(
        message_id: str,
        model: str,
        created: int,
        content: str,
        role: str | None = None,
    ) -> str:
        """
        Format a content chunk with text delta.

        Args:
            message_id: Unique identifier for the completion
            model: Model name being used
            created: Unix timestamp when the completion was created
            content: Text content to include in the delta
            role: Role to attach; only the first chunk of a stream carries one

        Returns:
            Formatted SSE string
        """
        delta: dict[str, Any] = {}
        if role is not None:
            delta["role"] = role
        delta["content"] = content

        data = {
            "id": message_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": None,
                }
            ],
        }
        return OpenAIStreamingFormatter.format_data_event(data)

    @staticmethod
    def format_error(
        message: str, error_type: str = "server_error", code: str | None = None
    ) -> str:
        """Format an inline error payload ``{"error": {message, type, code}}``."""
        return OpenAIStreamingFormatter.format_data_event(
            error_body(message, error_type, code)
        )

    @staticmethod
    def format_done() -> str:
        """
        Format the final DONE event.

        Returns:
            Formatted SSE termination string
        """
        return "data: [DONE]\n\n"
