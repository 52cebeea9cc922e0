"""Convert Claude CLI results into OpenAI chat completion objects."""

import time
from typing import Any

from ccbridge.config.claude import DEFAULT_MODEL
from ccbridge.models.claude_cli import CLIResult
from ccbridge.models.openai import (
    OpenAIChatCompletionResponse,
    OpenAIChoice,
    OpenAIResponseMessage,
    OpenAIUsage,
)


def normalize_model_name(model: str | None) -> str:
    """Map a full CLI model id (``claude-sonnet-4-5-20250929``) to its public name."""
    if not model:
        return DEFAULT_MODEL
    lowered = model.lower()
    for family in ("opus", "sonnet", "haiku"):
        if family in lowered:
            return f"claude-{family}-4"
    return model


def completion_id(request_id: str) -> str:
    return f"chatcmpl-{request_id}"


def cli_result_to_openai(result: CLIResult, request_id: str) -> dict[str, Any]:
    """Build a ``chat.completion`` document from a CLI result."""
    model = next(iter(result.model_usage), None)
    usage = result.usage
    response = OpenAIChatCompletionResponse(
        id=completion_id(request_id),
        created=int(time.time()),
        model=normalize_model_name(model),
        choices=[
            OpenAIChoice(
                index=0,
                message=OpenAIResponseMessage(role="assistant", content=result.result),
                finish_reason="stop",
            )
        ],
        usage=OpenAIUsage(
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            total_tokens=usage.input_tokens + usage.output_tokens,
        ),
    )
    return response.model_dump()


def create_done_chunk(request_id: str, model: str) -> dict[str, Any]:
    """Terminal ``chat.completion.chunk`` carrying ``finish_reason: stop``."""
    return {
        "id": completion_id(request_id),
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {},
                "finish_reason": "stop",
            }
        ],
    }
