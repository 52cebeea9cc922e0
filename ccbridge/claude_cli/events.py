"""Lifecycle events emitted by a backing process.

A run produces any number of ``ContentDelta`` and ``AssistantEvent`` values and is
ended by ``ResultEvent`` or ``ErrorEvent``. ``CloseEvent`` is always last and may
follow either of them.
"""

from dataclasses import dataclass

from ccbridge.models.claude_cli import (
    CLIAssistantMessage,
    CLIMessage,
    CLIResult,
    CLIStreamEvent,
)


@dataclass(frozen=True, slots=True)
class ContentDelta:
    """Incremental text fragment."""

    text: str


@dataclass(frozen=True, slots=True)
class AssistantEvent:
    """Announces the model the CLI actually used."""

    model: str


@dataclass(frozen=True, slots=True)
class ResultEvent:
    """Final structured answer."""

    result: CLIResult


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Unrecoverable failure while the process was running."""

    message: str


@dataclass(frozen=True, slots=True)
class CloseEvent:
    """The process exited; ``exit_code`` is negative when killed by a signal."""

    exit_code: int | None


LifecycleEvent = ContentDelta | AssistantEvent | ResultEvent | ErrorEvent | CloseEvent


def events_from_message(message: CLIMessage) -> list[LifecycleEvent]:
    """Map one parsed CLI stdout message to lifecycle events."""
    if isinstance(message, CLIStreamEvent):
        text = message.text_delta
        return [ContentDelta(text)] if text is not None else []
    if isinstance(message, CLIAssistantMessage):
        return [AssistantEvent(message.message.model)]
    if isinstance(message, CLIResult):
        return [ResultEvent(message)]
    return []
