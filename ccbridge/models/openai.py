"""OpenAI-compatible Pydantic models for the ccbridge server.

Request models are lenient: clients commonly send OpenAI parameters the Claude CLI
has no use for, so unknown fields are ignored rather than rejected. Response models
mirror OpenAI's chat completion objects.
"""

import time
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


OpenAIMessageRole = Literal["system", "developer", "user", "assistant", "tool"]


# OpenAI Message Models
class OpenAIMessageContent(BaseModel):
    """Content part within an OpenAI message."""

    type: Annotated[str, Field(description="Content type")]
    text: Annotated[str | None, Field(description="Text content")] = None

    model_config = ConfigDict(extra="ignore")


class OpenAIMessage(BaseModel):
    """OpenAI-compatible message model."""

    role: Annotated[
        OpenAIMessageRole, Field(description="The role of the message sender")
    ]
    content: Annotated[
        str | list[OpenAIMessageContent] | None,
        Field(description="The content of the message"),
    ] = None
    name: Annotated[
        str | None, Field(description="The name of the participant (optional)")
    ] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def text(self) -> str:
        """Concatenated text of the message content."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text or "" for part in self.content if part.type == "text")


# OpenAI Request Models
class OpenAIChatCompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request model.

    ``messages`` is optional at the schema level so that an absent or empty list
    is reported by the dispatcher with its own ``invalid_messages`` error.
    """

    model: str = Field("claude-sonnet-4", description="ID of the model to use")
    messages: list[OpenAIMessage] | None = Field(
        None, description="A list of messages comprising the conversation so far"
    )
    stream: bool | None = Field(
        False, description="Whether to stream back partial progress"
    )
    user: str | None = Field(
        None,
        description="End-user identifier; forwarded to the CLI as its session id",
    )

    model_config = ConfigDict(extra="ignore")


# OpenAI Response Models
class OpenAIUsage(BaseModel):
    """OpenAI usage statistics."""

    prompt_tokens: int = Field(..., description="Number of tokens in the prompt")
    completion_tokens: int = Field(
        ..., description="Number of tokens in the generated completion"
    )
    total_tokens: int = Field(
        ..., description="Total number of tokens used in the request"
    )


class OpenAIResponseMessage(BaseModel):
    """OpenAI response message model."""

    role: Literal["assistant"] = Field(
        "assistant", description="The role of the message sender"
    )
    content: str | None = Field(None, description="The content of the message")


class OpenAIChoice(BaseModel):
    """OpenAI choice in response."""

    index: int = Field(..., description="The index of the choice")
    message: OpenAIResponseMessage = Field(
        ..., description="The message generated by the model"
    )
    finish_reason: str = Field(
        ..., description="The reason the model stopped generating tokens"
    )


class OpenAIChatCompletionResponse(BaseModel):
    """OpenAI-compatible chat completion response model."""

    id: str = Field(..., description="A unique identifier for the chat completion")
    object: Literal["chat.completion"] = Field(
        "chat.completion", description="The object type"
    )
    created: int = Field(
        default_factory=lambda: int(time.time()),
        description="The Unix timestamp of when the chat completion was created",
    )
    model: str = Field(..., description="The model used for the chat completion")
    choices: list[OpenAIChoice] = Field(
        ..., description="A list of chat completion choices"
    )
    usage: OpenAIUsage = Field(
        ..., description="Usage statistics for the completion request"
    )


# OpenAI Models List Response
class OpenAIModelInfo(BaseModel):
    """OpenAI model information."""

    id: str = Field(..., description="The model identifier")
    object: Literal["model"] = Field("model", description="The object type")
    owned_by: str = Field(
        "anthropic", description="The organization that owns the model"
    )
    created: int = Field(
        default_factory=lambda: int(time.time()),
        description="The Unix timestamp of when the model was created",
    )
    context_window: int = Field(..., description="Maximum context length in tokens")
    max_tokens: int = Field(..., description="Maximum output tokens")


class OpenAIModelsResponse(BaseModel):
    """OpenAI models list response."""

    object: Literal["list"] = Field("list", description="The object type")
    data: list[OpenAIModelInfo] = Field(..., description="List of model objects")

    @classmethod
    def create_default(cls) -> "OpenAIModelsResponse":
        """Create the models response for the models the Claude CLI can serve."""
        return cls(
            data=[
                OpenAIModelInfo(
                    id="claude-opus-4", context_window=1_000_000, max_tokens=128_000
                ),
                OpenAIModelInfo(
                    id="claude-sonnet-4", context_window=200_000, max_tokens=64_000
                ),
                OpenAIModelInfo(
                    id="claude-haiku-4", context_window=200_000, max_tokens=64_000
                ),
            ]
        )


# OpenAI Error Response Models
class OpenAIErrorDetail(BaseModel):
    """OpenAI error detail."""

    message: str = Field(..., description="A human-readable error message")
    type: str = Field(..., description="The error type")
    code: str | None = Field(None, description="The error code")


class OpenAIErrorResponse(BaseModel):
    """OpenAI error response."""

    error: OpenAIErrorDetail = Field(..., description="The error details")

    @classmethod
    def create(
        cls, message: str, error_type: str, code: str | None = None
    ) -> "OpenAIErrorResponse":
        """Create an error response."""
        return cls(error=OpenAIErrorDetail(message=message, type=error_type, code=code))


__all__ = [
    "OpenAIMessage",
    "OpenAIMessageContent",
    "OpenAIChatCompletionRequest",
    "OpenAIUsage",
    "OpenAIResponseMessage",
    "OpenAIChoice",
    "OpenAIChatCompletionResponse",
    "OpenAIModelInfo",
    "OpenAIModelsResponse",
    "OpenAIErrorDetail",
    "OpenAIErrorResponse",
]
