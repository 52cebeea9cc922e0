"""Convert OpenAI chat completion requests into Claude CLI invocations."""

from collections.abc import Sequence
from dataclasses import dataclass

from ccbridge.models.openai import OpenAIChatCompletionRequest, OpenAIMessage


# Aliases accepted by ``claude --model``
CLI_MODEL_ALIASES = ("opus", "sonnet", "haiku")
DEFAULT_CLI_MODEL = "opus"


@dataclass(frozen=True, slots=True)
class CLIInvocation:
    """Everything needed to launch one CLI run."""

    prompt: str
    model: str
    session_id: str | None = None
    cwd: str | None = None


def extract_model(model: str | None) -> str:
    """Map an OpenAI-style model name to a CLI model alias.

    Provider prefixes (``anthropic/claude-sonnet-4``) are stripped; unknown names
    fall back to ``opus``.
    """
    if not model:
        return DEFAULT_CLI_MODEL
    name = model.rsplit("/", 1)[-1].lower()
    for alias in CLI_MODEL_ALIASES:
        if alias in name:
            return alias
    return DEFAULT_CLI_MODEL


def messages_to_prompt(messages: Sequence[OpenAIMessage]) -> str:
    """Flatten a conversation into a single CLI prompt.

    System messages and earlier assistant turns are wrapped in tags so the model
    can tell them apart from the user's own text.
    """
    parts: list[str] = []
    for message in messages:
        text = message.text
        if message.role in ("system", "developer"):
            parts.append(f"<system>\n{text}\n</system>\n")
        elif message.role == "assistant":
            parts.append(f"<previous_response>\n{text}\n</previous_response>\n")
        else:
            parts.append(text)
    return "\n".join(parts).strip()


def openai_to_cli(
    request: OpenAIChatCompletionRequest, cwd: str | None = None
) -> CLIInvocation:
    """Build the CLI invocation for a validated chat completion request."""
    return CLIInvocation(
        prompt=messages_to_prompt(request.messages or []),
        model=extract_model(request.model),
        session_id=request.user,
        cwd=cwd,
    )
