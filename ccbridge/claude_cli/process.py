"""Claude CLI subprocess wrapper.

One ``ClaudeCLIProcess`` runs one ``claude --print`` invocation. Its stdout is
parsed line by line into lifecycle events and pushed onto a bounded queue that a
single consumer drains through ``events()``.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import AsyncGenerator
from typing import Protocol

from ccbridge.config.claude import ClaudeSettings
from ccbridge.core.errors import ProcessStartError
from ccbridge.core.logging import get_logger
from ccbridge.models.claude_cli import CLIParseError, parse_cli_line

from .events import (
    CloseEvent,
    ErrorEvent,
    LifecycleEvent,
    ResultEvent,
    events_from_message,
)


logger = get_logger(__name__)

CLI_NOT_FOUND_MESSAGE = (
    "Claude CLI not found. Install with: npm install -g @anthropic-ai/claude-code"
)

# stream-json lines carry whole assistant turns
_STREAM_LIMIT = 16 * 1024 * 1024

# stderr lines kept for the exit log
STDERR_TAIL_LINES = 20


class BackingProcess(Protocol):
    """Single-use event source with a termination control."""

    @property
    def is_running(self) -> bool: ...

    async def start(
        self,
        prompt: str,
        model: str,
        session_id: str | None = None,
        cwd: str | None = None,
    ) -> None: ...

    def kill(self) -> bool: ...

    def events(self) -> AsyncGenerator[LifecycleEvent, None]: ...


class ClaudeCLIProcess:
    """Runs the Claude CLI in stream-json mode and exposes its lifecycle events."""

    def __init__(self, settings: ClaudeSettings, request_id: str | None = None):
        self._settings = settings
        self.request_id = request_id
        self._queue: asyncio.Queue[LifecycleEvent] = asyncio.Queue(
            maxsize=settings.event_queue_size
        )
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None
        self._stderr_lines: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._terminal_emitted = False
        self._consumer_gone = False
        self._killed = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def stderr_tail(self) -> list[str]:
        """The last ``STDERR_TAIL_LINES`` non-empty stderr lines."""
        return list(self._stderr_lines)

    @staticmethod
    def build_command(
        cli_path: str, prompt: str, model: str, session_id: str | None = None
    ) -> list[str]:
        """Build the argv for a non-interactive stream-json run."""
        cmd = [
            cli_path,
            "--print",
            "--output-format",
            "stream-json",
            "--verbose",
            "--include-partial-messages",
            "--model",
            model,
            "--no-session-persistence",
        ]
        if session_id:
            cmd.extend(["--session-id", session_id])
        cmd.append(prompt)
        return cmd

    async def start(
        self,
        prompt: str,
        model: str,
        session_id: str | None = None,
        cwd: str | None = None,
    ) -> None:
        """Spawn the CLI.

        Raises:
            ProcessStartError: If the CLI cannot be found or launched.
        """
        if self._process is not None:
            raise RuntimeError("ClaudeCLIProcess instances are single-use")

        cli_path = self._settings.find_cli()
        if cli_path is None:
            raise ProcessStartError(CLI_NOT_FOUND_MESSAGE)

        cmd = self.build_command(cli_path, prompt, model, session_id)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError as e:
            if cwd is not None and e.filename == cwd:
                raise ProcessStartError(
                    f"Working directory does not exist: {cwd}"
                ) from e
            raise ProcessStartError(CLI_NOT_FOUND_MESSAGE) from e
        except OSError as e:
            raise ProcessStartError(f"Failed to start Claude CLI: {e}") from e

        logger.info(
            "claude_process_started",
            request_id=self.request_id,
            pid=self._process.pid,
            model=model,
            session_id=session_id,
            cwd=cwd,
        )

        self._reader_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())
        if self._settings.timeout_seconds > 0:
            self._watchdog_task = asyncio.create_task(
                self._watchdog(self._settings.timeout_seconds)
            )

    def kill(self) -> bool:
        """Forcibly terminate the CLI. Safe to call repeatedly.

        Returns:
            True if a kill signal was sent by this call.
        """
        if self._killed or not self.is_running:
            return False
        assert self._process is not None
        self._killed = True
        try:
            self._process.kill()
        except ProcessLookupError:
            return False
        logger.info(
            "claude_process_killed", request_id=self.request_id, pid=self._process.pid
        )
        return True

    async def events(self) -> AsyncGenerator[LifecycleEvent, None]:
        """Yield lifecycle events in emission order, ending after ``CloseEvent``."""
        try:
            while True:
                event = await self._queue.get()
                yield event
                if isinstance(event, CloseEvent):
                    return
        finally:
            self._consumer_gone = True
            # Unblock producers waiting on a full queue
            while not self._queue.empty():
                self._queue.get_nowait()

    async def _emit(self, event: LifecycleEvent) -> None:
        if isinstance(event, ResultEvent | ErrorEvent):
            self._terminal_emitted = True
        if self._consumer_gone:
            return
        await self._queue.put(event)

    async def _read_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        try:
            async for raw_line in self._process.stdout:
                line = raw_line.decode("utf-8", errors="replace")
                try:
                    message = parse_cli_line(line)
                except CLIParseError as e:
                    logger.debug(
                        "claude_cli_unparsed_line",
                        request_id=self.request_id,
                        error=str(e),
                        line=line[:200],
                    )
                    continue
                if message is None:
                    continue
                for event in events_from_message(message):
                    await self._emit(event)
        except ValueError as e:
            # StreamReader limit overrun
            logger.error(
                "claude_cli_read_failed", request_id=self.request_id, error=str(e)
            )
            await self._emit(ErrorEvent(f"Failed to read Claude CLI output: {e}"))
            self.kill()

        exit_code = await self._process.wait()
        if self._stderr_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
        if self._watchdog_task is not None:
            self._watchdog_task.cancel()

        log = logger.info if exit_code == 0 else logger.warning
        log(
            "claude_process_exited",
            request_id=self.request_id,
            exit_code=exit_code,
            stderr="\n".join(self._stderr_lines) or None,
        )
        await self._emit(CloseEvent(exit_code))

    async def _read_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        async for raw_line in self._process.stderr:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if line:
                self._stderr_lines.append(line)
                logger.debug("claude_cli_stderr", request_id=self.request_id, line=line)

    async def _watchdog(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self._terminal_emitted or not self.is_running:
            return
        logger.warning(
            "claude_process_timeout", request_id=self.request_id, timeout=timeout
        )
        await self._emit(ErrorEvent(f"Request timed out after {timeout:g} seconds"))
        self.kill()
