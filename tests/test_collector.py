"""Tests for the non-streaming collector and its disconnect watch."""

import asyncio

import structlog

from ccbridge.adapters.openai_to_cli import CLIInvocation
from ccbridge.claude_cli.events import CloseEvent, ContentDelta, ErrorEvent, ResultEvent
from ccbridge.config.claude import ClaudeSettings
from ccbridge.models.openai import OpenAIChatCompletionRequest
from ccbridge.services.orchestrator import (
    NonStreamingCollector,
    ResponseOrchestrator,
)
from tests.conftest import (
    FakeProcess,
    RecordingContextProcess,
    make_result,
    successful_run,
)


REQUEST_ID = "0123456789abcdef01234567"
INVOCATION = CLIInvocation(prompt="Hi", model="sonnet")


def make_collector(
    process: FakeProcess, settings: ClaudeSettings
) -> NonStreamingCollector:
    return NonStreamingCollector(process, INVOCATION, REQUEST_ID, settings)


def chat_request() -> OpenAIChatCompletionRequest:
    return OpenAIChatCompletionRequest(messages=[{"role": "user", "content": "Hi"}])


class TestNonStreamingCollector:
    """Test buffering a run into one response document."""

    async def test_result_becomes_chat_completion(self, claude_settings):
        """Test that a result followed by a clean exit yields a 200 document."""
        process = FakeProcess(successful_run("Hello", " world"))

        collected = await make_collector(process, claude_settings).collect()

        assert collected.status_code == 200
        body = collected.body
        assert body["id"] == f"chatcmpl-{REQUEST_ID}"
        assert body["object"] == "chat.completion"
        assert body["model"] == "claude-sonnet-4"
        assert body["choices"][0]["message"] == {
            "role": "assistant",
            "content": "Hello world",
        }
        assert body["choices"][0]["finish_reason"] == "stop"
        assert body["usage"] == {
            "prompt_tokens": 10,
            "completion_tokens": 5,
            "total_tokens": 15,
        }
        assert process.kill_count == 0

    async def test_deltas_are_ignored(self, claude_settings):
        """Test that only the final result text is used."""
        events = [
            ContentDelta("draft"),
            ResultEvent(make_result("final")),
            CloseEvent(0),
        ]

        collected = await make_collector(FakeProcess(events), claude_settings).collect()

        assert collected.body["choices"][0]["message"]["content"] == "final"

    async def test_exit_without_result(self, claude_settings):
        """Test that an exit with no result is a 500 naming the exit code."""
        process = FakeProcess([CloseEvent(2)])

        collected = await make_collector(process, claude_settings).collect()

        assert collected.status_code == 500
        assert collected.body == {
            "error": {
                "message": "Claude CLI exited with code 2 without response",
                "type": "server_error",
                "code": None,
            }
        }

    async def test_error_event(self, claude_settings):
        """Test that a runtime error is a 500 carrying its message."""
        process = FakeProcess([ErrorEvent("boom"), CloseEvent(1)])

        collected = await make_collector(process, claude_settings).collect()

        assert collected.status_code == 500
        assert collected.body["error"]["message"] == "boom"
        assert collected.body["error"]["type"] == "server_error"

    async def test_start_failure(self, claude_settings, start_error):
        """Test that a launch failure is a 500 with the launch message."""
        process = FakeProcess(start_error=start_error)

        collected = await make_collector(process, claude_settings).collect()

        assert collected.status_code == 500
        assert collected.body["error"]["message"].startswith("Claude CLI not found")

    async def test_lingering_process_is_killed_after_result(self):
        """Test that the result is returned first and the process reaped after."""
        settings = ClaudeSettings(timeout_seconds=0, exit_grace_seconds=0.05)
        process = FakeProcess([ResultEvent(make_result("done"))], hang=True)
        collector = make_collector(process, settings)

        collected = await collector.collect()

        assert collected.status_code == 200
        assert collected.body["choices"][0]["message"]["content"] == "done"
        assert process.kill_count == 0
        assert collector.reaper is not None

        await asyncio.wait_for(collector.reaper, timeout=5)

        assert process.kill_count == 1
        assert not process.is_running

    async def test_result_does_not_wait_for_exit_grace(self):
        """Test that a slow-exiting process does not delay the response."""
        settings = ClaudeSettings(timeout_seconds=0, exit_grace_seconds=30)
        process = FakeProcess([ResultEvent(make_result("done"))], hang=True)
        collector = make_collector(process, settings)

        collected = await asyncio.wait_for(collector.collect(), timeout=5)

        assert collected.status_code == 200
        assert process.is_running

        process.kill()
        await asyncio.wait_for(collector.reaper, timeout=5)

    async def test_error_kills_running_process(self, claude_settings):
        """Test that a process still running after an error is stopped."""
        process = FakeProcess([ErrorEvent("boom")], hang=True)
        collector = make_collector(process, claude_settings)

        collected = await collector.collect()

        assert collected.status_code == 500
        assert process.kill_count == 1
        assert collector.reaper is None


class TestOrchestratorComplete:
    """Test the non-streaming entry point of the orchestrator."""

    async def test_complete_without_disconnect_watch(self, claude_settings):
        """Test a plain completion."""
        process = FakeProcess(successful_run("Hi there"))
        orchestrator = ResponseOrchestrator(claude_settings, lambda _: process)

        collected = await orchestrator.complete(chat_request(), REQUEST_ID)

        assert collected is not None
        assert collected.status_code == 200
        assert process.invocation is not None
        assert process.invocation.prompt == "Hi"
        assert process.invocation.model == "sonnet"

    async def test_complete_with_connected_client(self, claude_settings):
        """Test that a connected client gets the collected response."""
        process = FakeProcess(successful_run("Hi"))
        orchestrator = ResponseOrchestrator(claude_settings, lambda _: process)

        async def is_disconnected() -> bool:
            return False

        collected = await orchestrator.complete(
            chat_request(), REQUEST_ID, is_disconnected=is_disconnected
        )

        assert collected is not None
        assert collected.status_code == 200

    async def test_client_disconnect_kills_process_once(self):
        """Test that a disconnected client stops the run and gets no response."""
        settings = ClaudeSettings(timeout_seconds=0, disconnect_poll_interval=0.01)
        process = FakeProcess(hang=True)
        orchestrator = ResponseOrchestrator(settings, lambda _: process)
        polls = 0

        async def is_disconnected() -> bool:
            nonlocal polls
            polls += 1
            return polls >= 3

        collected = await asyncio.wait_for(
            orchestrator.complete(
                chat_request(), REQUEST_ID, is_disconnected=is_disconnected
            ),
            timeout=5,
        )

        assert collected is None
        assert process.kill_count == 1
        assert not process.is_running

    async def test_request_id_is_bound_while_collecting(self, claude_settings):
        """Test that logs emitted for the run carry the request id."""
        process = RecordingContextProcess(successful_run("Hi"))
        orchestrator = ResponseOrchestrator(claude_settings, lambda _: process)

        await orchestrator.complete(chat_request(), REQUEST_ID)

        assert process.context is not None
        assert process.context["request_id"] == REQUEST_ID
        assert "request_id" not in structlog.contextvars.get_contextvars()

    async def test_shutdown_kills_lingering_process(self):
        """Test that shutdown stops a process still running after its response."""
        settings = ClaudeSettings(timeout_seconds=0, exit_grace_seconds=30)
        process = FakeProcess([ResultEvent(make_result("done"))], hang=True)
        orchestrator = ResponseOrchestrator(settings, lambda _: process)

        collected = await orchestrator.complete(chat_request(), REQUEST_ID)

        assert collected is not None
        assert collected.status_code == 200
        assert len(orchestrator.pending_reapers) == 1

        await orchestrator.shutdown()

        assert process.kill_count == 1
        assert not orchestrator.pending_reapers
