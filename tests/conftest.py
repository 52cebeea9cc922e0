"""Shared test fixtures for ccbridge tests.

The backing process is replaced by ``FakeProcess``, a scripted double that honours
the same start/kill/events contract as ``ClaudeCLIProcess`` without spawning the
Claude CLI.
"""

import asyncio
import os
import stat
from collections.abc import AsyncGenerator, Callable, Iterable
from pathlib import Path
from typing import Any

import pytest
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from ccbridge.adapters.openai_to_cli import CLIInvocation
from ccbridge.api.app import create_app
from ccbridge.claude_cli.events import (
    AssistantEvent,
    CloseEvent,
    ContentDelta,
    LifecycleEvent,
    ResultEvent,
)
from ccbridge.claude_cli.process import CLI_NOT_FOUND_MESSAGE
from ccbridge.config.claude import ClaudeSettings
from ccbridge.config.core import LoggingSettings, ServerSettings
from ccbridge.config.settings import Settings
from ccbridge.core.errors import ProcessStartError
from ccbridge.core.logging import setup_logging
from ccbridge.models.claude_cli import CLIResult


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    config.option.asyncio_mode = "auto"

    # Reuse the application logging pipeline so processors behave as in production
    setup_logging(json_logs=False, log_level_name="DEBUG")


class FakeProcess:
    """Scripted backing process.

    Yields ``events`` in order. With ``hang=True`` it keeps running after the
    script until killed, then reports ``CloseEvent(-9)``.
    """

    def __init__(
        self,
        events: Iterable[LifecycleEvent] = (),
        start_error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        self.scripted = list(events)
        self.start_error = start_error
        self.hang = hang
        self.invocation: CLIInvocation | None = None
        self.kill_count = 0
        self.started = False
        self._running = False
        self._killed = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(
        self,
        prompt: str,
        model: str,
        session_id: str | None = None,
        cwd: str | None = None,
    ) -> None:
        self.invocation = CLIInvocation(prompt, model, session_id, cwd)
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        self._running = True

    def kill(self) -> bool:
        self.kill_count += 1
        was_running = self._running
        self._running = False
        self._killed.set()
        return was_running

    async def events(self) -> AsyncGenerator[LifecycleEvent, None]:
        for event in self.scripted:
            await asyncio.sleep(0)
            if isinstance(event, CloseEvent):
                self._running = False
            yield event
            if isinstance(event, CloseEvent):
                return
        if self.hang:
            await self._killed.wait()
            self._running = False
            yield CloseEvent(-9)


class RecordingContextProcess(FakeProcess):
    """Remembers the structlog context the process was started in."""

    context: dict[str, Any] | None = None

    async def start(self, *args: Any, **kwargs: Any) -> None:
        self.context = structlog.contextvars.get_contextvars()
        await super().start(*args, **kwargs)


def make_result(
    text: str = "Hello world",
    model: str = "claude-sonnet-4-5-20250929",
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> CLIResult:
    return CLIResult.model_validate(
        {
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "result": text,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            "modelUsage": {model: {"inputTokens": input_tokens}},
        }
    )


def successful_run(
    *chunks: str, model: str = "claude-sonnet-4-5-20250929"
) -> list[LifecycleEvent]:
    """Events of a normal run: deltas, assistant turn, result, clean exit."""
    return [
        *(ContentDelta(chunk) for chunk in chunks),
        AssistantEvent(model),
        ResultEvent(make_result("".join(chunks), model=model)),
        CloseEvent(0),
    ]


@pytest.fixture
def claude_settings() -> ClaudeSettings:
    return ClaudeSettings(timeout_seconds=0, exit_grace_seconds=0.2)


@pytest.fixture
def settings(claude_settings: ClaudeSettings) -> Settings:
    return Settings(
        server=ServerSettings(),
        logging=LoggingSettings(level="DEBUG"),
        claude=claude_settings,
    )


@pytest.fixture
def fake_processes() -> list[FakeProcess]:
    """Processes the app will hand out, in request order."""
    return []


@pytest.fixture
def process_factory(
    fake_processes: list[FakeProcess],
) -> Callable[[str], FakeProcess]:
    def factory(request_id: str) -> FakeProcess:
        if not fake_processes:
            raise AssertionError(f"no scripted process for request {request_id}")
        return fake_processes.pop(0)

    return factory


@pytest.fixture
def app(settings: Settings, process_factory: Callable[[str], FakeProcess]) -> FastAPI:
    return create_app(settings, process_factory=process_factory)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def fake_cli(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable shell script standing in for the Claude CLI."""

    def write(body: str, name: str = "claude") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return write


@pytest.fixture
def start_error() -> ProcessStartError:
    return ProcessStartError(CLI_NOT_FOUND_MESSAGE)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep user config files and env vars out of the settings under test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    for key in list(os.environ):
        if key.upper().startswith(("SERVER__", "LOGGING__", "CLAUDE__")):
            monkeypatch.delenv(key, raising=False)
