"""Models for the Claude CLI ``--output-format stream-json`` wire format.

Each stdout line of ``claude --print --output-format stream-json --verbose`` is a
JSON object tagged by ``type``. Only the fields ccbridge reads are modelled; the
rest are kept as extras.
"""

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError


class CLIBaseMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    session_id: str | None = None


class CLISystemMessage(CLIBaseMessage):
    """Init/system notice emitted before the conversation starts."""

    type: Literal["system"]
    subtype: str | None = None
    model: str | None = None


class CLIAssistantBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str
    content: list[dict[str, Any]] = Field(default_factory=list)


class CLIAssistantMessage(CLIBaseMessage):
    """A complete assistant turn; carries the model actually used."""

    type: Literal["assistant"]
    message: CLIAssistantBody


class CLIUserMessage(CLIBaseMessage):
    type: Literal["user"]


class CLIStreamEvent(CLIBaseMessage):
    """Raw streaming event forwarded from the API (``--include-partial-messages``)."""

    type: Literal["stream_event"]
    event: dict[str, Any] = Field(default_factory=dict)

    @property
    def text_delta(self) -> str | None:
        """Text carried by a ``content_block_delta``/``text_delta`` event, if any."""
        if self.event.get("type") != "content_block_delta":
            return None
        delta = self.event.get("delta") or {}
        if delta.get("type") != "text_delta":
            return None
        text = delta.get("text")
        return text if isinstance(text, str) else None


class CLIUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


class CLIResult(CLIBaseMessage):
    """Final result of a CLI run."""

    type: Literal["result"]
    subtype: str = "success"
    is_error: bool = False
    result: str = ""
    duration_ms: int | None = None
    num_turns: int | None = None
    total_cost_usd: float | None = None
    usage: CLIUsage = Field(default_factory=CLIUsage)
    model_usage: dict[str, dict[str, Any]] = Field(
        default_factory=dict, alias="modelUsage"
    )

    model_config = ConfigDict(extra="allow", populate_by_name=True)


CLIMessage = Annotated[
    CLISystemMessage
    | CLIAssistantMessage
    | CLIUserMessage
    | CLIStreamEvent
    | CLIResult,
    Field(discriminator="type"),
]

_cli_message_adapter: TypeAdapter[CLIMessage] = TypeAdapter(CLIMessage)

KNOWN_MESSAGE_TYPES = frozenset(
    {"system", "assistant", "user", "stream_event", "result"}
)


class CLIParseError(ValueError):
    """A stdout line could not be decoded as a CLI message."""


def parse_cli_line(line: str) -> CLIMessage | None:
    """Parse one stdout line into a CLI message.

    Returns:
        The parsed message, or None for blank lines and unknown message types.

    Raises:
        CLIParseError: If the line is not JSON or a known type fails validation.
    """
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise CLIParseError(f"Invalid JSON from Claude CLI: {e}") from e

    if not isinstance(data, dict) or data.get("type") not in KNOWN_MESSAGE_TYPES:
        return None

    try:
        return _cli_message_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise CLIParseError(f"Malformed {data.get('type')} message: {e}") from e
