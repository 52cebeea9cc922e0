"""Claude CLI backing process and its lifecycle events."""

from .events import (
    AssistantEvent,
    CloseEvent,
    ContentDelta,
    ErrorEvent,
    LifecycleEvent,
    ResultEvent,
)
from .process import BackingProcess, ClaudeCLIProcess


__all__ = [
    "AssistantEvent",
    "BackingProcess",
    "ClaudeCLIProcess",
    "CloseEvent",
    "ContentDelta",
    "ErrorEvent",
    "LifecycleEvent",
    "ResultEvent",
]
