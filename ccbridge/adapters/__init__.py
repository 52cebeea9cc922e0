"""Pure converters between the OpenAI wire format and Claude CLI invocations."""

from .cli_to_openai import cli_result_to_openai, create_done_chunk, normalize_model_name
from .openai_to_cli import (
    CLIInvocation,
    extract_model,
    messages_to_prompt,
    openai_to_cli,
)


__all__ = [
    "CLIInvocation",
    "cli_result_to_openai",
    "create_done_chunk",
    "extract_model",
    "messages_to_prompt",
    "normalize_model_name",
    "openai_to_cli",
]
