"""Response orchestration for chat completions backed by the Claude CLI.

Each inbound request owns exactly one backing process. The orchestrator starts it,
consumes its lifecycle events in order and turns them into exactly one outbound
response: either an SSE stream (``StreamingBridge``) or a single JSON document
(``NonStreamingCollector``).

Streaming states::

    INIT -> STREAMING -> COMPLETE | FAILED | CANCELLED

``ResponseState.mark_complete`` is the single source of truth for whether a
terminal event has been handled. ``result``, ``error``, ``close`` and client
cancellation all go through it, so racing terminals produce one terminal frame.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from ccbridge.adapters.cli_to_openai import (
    cli_result_to_openai,
    completion_id,
    create_done_chunk,
)
from ccbridge.adapters.openai_to_cli import CLIInvocation, openai_to_cli
from ccbridge.claude_cli.events import (
    AssistantEvent,
    CloseEvent,
    ContentDelta,
    ErrorEvent,
    LifecycleEvent,
    ResultEvent,
)
from ccbridge.claude_cli.process import BackingProcess, ClaudeCLIProcess
from ccbridge.config.claude import ClaudeSettings
from ccbridge.core.errors import ClaudeProxyError, ProcessStartError, error_body
from ccbridge.core.logging import get_logger
from ccbridge.models.claude_cli import CLIResult
from ccbridge.models.openai import OpenAIChatCompletionRequest
from ccbridge.services.openai_streaming_formatter import OpenAIStreamingFormatter


logger = get_logger(__name__)

ProcessFactory = Callable[[str], BackingProcess]
DisconnectCheck = Callable[[], Awaitable[bool]]


def new_request_id() -> str:
    """Generate a 24-character request identity."""
    return uuid.uuid4().hex[:24]


class StreamPhase(StrEnum):
    INIT = "init"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ResponseState:
    """Per-request state of one streamed response.

    ``request_id`` and ``created`` never change. The flags are owned by the single
    event consumer of the request.
    """

    request_id: str
    model: str
    created: int = field(default_factory=lambda: int(time.time()))
    is_first: bool = True
    closed: bool = False
    phase: StreamPhase = StreamPhase.INIT
    _completed: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    @property
    def completed(self) -> bool:
        return self._completed

    def mark_complete(self) -> bool:
        """Set the completion flag.

        Returns:
            True for the caller that flipped it, False for every later caller.
        """
        with self._lock:
            if self._completed:
                return False
            self._completed = True
            return True


async def drain_until_exit(
    process: BackingProcess,
    events: AsyncIterator[LifecycleEvent],
    grace_seconds: float,
    request_id: str,
) -> None:
    """Consume remaining events until ``close``; kill the process if it lingers."""
    try:
        async with asyncio.timeout(grace_seconds):
            async for event in events:
                if isinstance(event, CloseEvent):
                    return
    except TimeoutError:
        logger.warning(
            "claude_process_exit_timeout",
            request_id=request_id,
            grace_seconds=grace_seconds,
        )
        process.kill()


async def reap_process(
    process: BackingProcess,
    events: AsyncGenerator[LifecycleEvent, None],
    grace_seconds: float,
    request_id: str,
) -> None:
    """Let a process whose response is already sent exit, then release it."""
    try:
        await drain_until_exit(process, events, grace_seconds, request_id)
    finally:
        if process.is_running:
            process.kill()
        await events.aclose()


class StreamingBridge:
    """Turns the lifecycle events of one process into an OpenAI SSE stream."""

    def __init__(
        self,
        process: BackingProcess,
        invocation: CLIInvocation,
        request_id: str,
        settings: ClaudeSettings,
    ) -> None:
        self._process = process
        self._invocation = invocation
        self._settings = settings
        self.state = ResponseState(request_id=request_id, model=settings.default_model)
        # Set when the process outlives the terminal frame
        self.reaper: asyncio.Task[None] | None = None

    def handle_event(self, event: LifecycleEvent) -> list[str]:
        """Apply one lifecycle event to the state and return the frames to write."""
        state = self.state
        fmt = OpenAIStreamingFormatter

        if isinstance(event, ContentDelta):
            if not event.text or state.closed:
                return []
            frame = fmt.format_content_chunk(
                completion_id(state.request_id),
                state.model,
                state.created,
                event.text,
                role="assistant" if state.is_first else None,
            )
            state.is_first = False
            state.phase = StreamPhase.STREAMING
            return [frame]

        if isinstance(event, AssistantEvent):
            state.model = event.model
            return []

        if isinstance(event, ResultEvent):
            state.mark_complete()
            if state.closed:
                return []
            state.phase = StreamPhase.COMPLETE
            return self._close(
                fmt.format_data_event(
                    create_done_chunk(state.request_id, state.model)
                ),
                fmt.format_done(),
            )

        if isinstance(event, ErrorEvent):
            state.mark_complete()
            if state.closed:
                return []
            logger.error(
                "streaming_process_error",
                request_id=state.request_id,
                error=event.message,
            )
            state.phase = StreamPhase.FAILED
            return self._close(fmt.format_error(event.message))

        if isinstance(event, CloseEvent):
            first_terminal = state.mark_complete()
            if state.closed:
                return []
            frames: list[str] = []
            if first_terminal and event.exit_code != 0:
                logger.error(
                    "streaming_process_exited_without_result",
                    request_id=state.request_id,
                    exit_code=event.exit_code,
                )
                frames.append(
                    fmt.format_error(f"Process exited with code {event.exit_code}")
                )
                state.phase = StreamPhase.FAILED
            else:
                state.phase = StreamPhase.COMPLETE
            frames.append(fmt.format_done())
            return self._close(*frames)

        return []

    def _close(self, *frames: str) -> list[str]:
        self.state.closed = True
        return list(frames)

    def _cancel(self) -> bool:
        """Handle a client disconnect. Only acts before any terminal event."""
        if not self.state.mark_complete():
            return False
        self.state.phase = StreamPhase.CANCELLED
        self.state.closed = True
        logger.info(
            "streaming_client_disconnected", request_id=self.state.request_id
        )
        self._process.kill()
        return True

    async def stream(self) -> AsyncIterator[str]:
        """Yield SSE text frames for the whole response.

        The preamble comment is yielded before the process starts. The generator
        returns right after the terminal frame; a process still running at that
        point is left to ``reaper``.

        Raises:
            ProcessStartError: If the process could not be launched. The preamble
                has already been written at that point.
        """
        state = self.state
        invocation = self._invocation
        yield OpenAIStreamingFormatter.format_comment("ok")

        events: AsyncGenerator[LifecycleEvent, None] | None = None
        cancelled = False
        try:
            try:
                await self._process.start(
                    invocation.prompt,
                    invocation.model,
                    session_id=invocation.session_id,
                    cwd=invocation.cwd,
                )
            except ProcessStartError:
                state.mark_complete()
                state.phase = StreamPhase.FAILED
                raise
            state.phase = StreamPhase.STREAMING

            events = self._process.events()
            exited = False
            async for event in events:
                exited = isinstance(event, CloseEvent)
                for frame in self.handle_event(event):
                    yield frame
                if state.closed:
                    break

            if not exited and self._process.is_running:
                self.reaper = asyncio.create_task(
                    reap_process(
                        self._process,
                        events,
                        self._settings.exit_grace_seconds,
                        state.request_id,
                    )
                )
                events = None
        except (asyncio.CancelledError, GeneratorExit):
            cancelled = self._cancel()
            raise
        finally:
            if events is not None:
                await events.aclose()
            if self.reaper is None and not cancelled and self._process.is_running:
                self._process.kill()
            logger.debug(
                "streaming_response_finished",
                request_id=state.request_id,
                phase=state.phase.value,
            )


@dataclass(frozen=True, slots=True)
class CollectedResponse:
    """Status code and JSON body of a non-streaming reply."""

    status_code: int
    body: dict[str, Any]

    @classmethod
    def failure(cls, message: str) -> CollectedResponse:
        return cls(status_code=500, body=error_body(message, "server_error"))


class NonStreamingCollector:
    """Buffers one process run into a single chat completion document."""

    def __init__(
        self,
        process: BackingProcess,
        invocation: CLIInvocation,
        request_id: str,
        settings: ClaudeSettings,
    ) -> None:
        self._process = process
        self._invocation = invocation
        self.request_id = request_id
        self._settings = settings
        self.reaper: asyncio.Task[None] | None = None

    async def collect(self) -> CollectedResponse:
        invocation = self._invocation
        try:
            await self._process.start(
                invocation.prompt,
                invocation.model,
                session_id=invocation.session_id,
                cwd=invocation.cwd,
            )
        except ProcessStartError as e:
            logger.error(
                "collector_start_failed", request_id=self.request_id, error=e.message
            )
            return CollectedResponse.failure(e.message)

        result: CLIResult | None = None
        events: AsyncGenerator[LifecycleEvent, None] | None = self._process.events()
        try:
            async for event in events:
                if isinstance(event, ResultEvent):
                    result = event.result
                    break
                if isinstance(event, ErrorEvent):
                    logger.error(
                        "collector_process_error",
                        request_id=self.request_id,
                        error=event.message,
                    )
                    return CollectedResponse.failure(event.message)
                if isinstance(event, CloseEvent):
                    logger.error(
                        "collector_process_exited_without_result",
                        request_id=self.request_id,
                        exit_code=event.exit_code,
                    )
                    return CollectedResponse.failure(
                        f"Claude CLI exited with code {event.exit_code} "
                        "without response"
                    )

            if result is not None and self._process.is_running:
                self.reaper = asyncio.create_task(
                    reap_process(
                        self._process,
                        events,
                        self._settings.exit_grace_seconds,
                        self.request_id,
                    )
                )
                events = None
        finally:
            if events is not None:
                await events.aclose()
            if self.reaper is None and self._process.is_running:
                self._process.kill()

        if result is None:
            return CollectedResponse.failure("Claude CLI ended without a result")
        return CollectedResponse(
            status_code=200, body=cli_result_to_openai(result, self.request_id)
        )


class ResponseOrchestrator:
    """Starts one backing process per request and produces its response.

    Processes that outlive their response are reaped in background tasks owned by
    the orchestrator; ``shutdown`` kills whatever is left of them.
    """

    def __init__(
        self,
        settings: ClaudeSettings,
        process_factory: ProcessFactory | None = None,
    ) -> None:
        self.settings = settings
        self._process_factory: ProcessFactory = process_factory or (
            lambda request_id: ClaudeCLIProcess(settings, request_id=request_id)
        )
        self._reapers: dict[asyncio.Task[None], BackingProcess] = {}

    @property
    def pending_reapers(self) -> frozenset[asyncio.Task[None]]:
        return frozenset(self._reapers)

    def _track_reaper(
        self, task: asyncio.Task[None] | None, process: BackingProcess
    ) -> None:
        if task is None or task.done():
            return
        self._reapers[task] = process
        task.add_done_callback(lambda t: self._reapers.pop(t, None))

    async def shutdown(self) -> None:
        """Kill processes still lingering after their responses were sent."""
        reapers = dict(self._reapers)
        for task in reapers:
            task.cancel()
        await asyncio.gather(*reapers, return_exceptions=True)
        # A reaper cancelled before its first step never ran its cleanup
        for process in reapers.values():
            if process.is_running:
                process.kill()

    def _prepare(
        self, request: OpenAIChatCompletionRequest, request_id: str
    ) -> tuple[BackingProcess, CLIInvocation]:
        invocation = openai_to_cli(request, cwd=self.settings.resolve_cwd())
        logger.info(
            "chat_completion_started",
            request_id=request_id,
            model=invocation.model,
            stream=bool(request.stream),
            messages=len(request.messages or []),
        )
        return self._process_factory(request_id), invocation

    async def stream(
        self, request: OpenAIChatCompletionRequest, request_id: str
    ) -> AsyncIterator[str]:
        """Stream SSE frames; launch and unexpected failures become inline errors.

        ``request_id`` is bound to the structlog context of the task iterating the
        stream, which serves this one response.
        """
        structlog.contextvars.bind_contextvars(request_id=request_id)
        process, invocation = self._prepare(request, request_id)
        bridge = StreamingBridge(process, invocation, request_id, self.settings)
        frames = bridge.stream()
        try:
            async for frame in frames:
                yield frame
        except ClaudeProxyError as e:
            logger.error(
                "streaming_start_failed", request_id=request_id, error=e.message
            )
            if not bridge.state.closed:
                yield OpenAIStreamingFormatter.format_error(e.message, e.error_type)
                yield OpenAIStreamingFormatter.format_done()
        except Exception as e:
            logger.error(
                "streaming_unexpected_error",
                request_id=request_id,
                error=str(e),
                exc_info=e,
            )
            if not bridge.state.closed:
                yield OpenAIStreamingFormatter.format_error(str(e))
                yield OpenAIStreamingFormatter.format_done()
        finally:
            await frames.aclose()
            self._track_reaper(bridge.reaper, process)

    async def complete(
        self,
        request: OpenAIChatCompletionRequest,
        request_id: str,
        is_disconnected: DisconnectCheck | None = None,
    ) -> CollectedResponse | None:
        """Collect a single response.

        When ``is_disconnected`` is given, it is polled while the process runs; if
        the client goes away first the process is killed and None is returned.
        """
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            process, invocation = self._prepare(request, request_id)
            collector = NonStreamingCollector(
                process, invocation, request_id, self.settings
            )
            try:
                return await self._collect(collector, process, is_disconnected)
            finally:
                self._track_reaper(collector.reaper, process)

    async def _collect(
        self,
        collector: NonStreamingCollector,
        process: BackingProcess,
        is_disconnected: DisconnectCheck | None,
    ) -> CollectedResponse | None:
        collect_task = asyncio.create_task(collector.collect())
        if is_disconnected is None:
            return await collect_task

        watch_task = asyncio.create_task(self._watch_disconnect(is_disconnected))
        try:
            done, _ = await asyncio.wait(
                {collect_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (collect_task, watch_task):
                if not task.done():
                    task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watch_task
            if not collect_task.done():
                with contextlib.suppress(asyncio.CancelledError):
                    await collect_task

        if collect_task in done:
            return collect_task.result()

        logger.info("collector_client_disconnected", request_id=collector.request_id)
        if process.is_running:
            process.kill()
        return None

    async def _watch_disconnect(self, is_disconnected: DisconnectCheck) -> None:
        while not await is_disconnected():
            await asyncio.sleep(self.settings.disconnect_poll_interval)
