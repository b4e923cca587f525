"""Tests for the agent session runner.

Sessions are replaced by an in-process fake so the tests exercise the
runner's timeout, cancellation and metrics handling without spawning the
agent CLI. CliAgentSession is exercised against a small shell script.
"""

import asyncio
import io
import json
import os
import sys
from pathlib import Path

import pytest

from awflow.errors import ConfigurationError
from awflow.runner import Runner, RunnerConfig, read_prompt
from awflow.runner.errors import RunnerCancelled, RunnerDeadlineExceeded, RunnerFailure
from awflow.runner.session import (
    CliAgentSession,
    EventPublisher,
    SessionEvent,
    iter_lines,
    parse_event_line,
)


class FakeSession(EventPublisher):
    """Publishes scripted events, then optionally hangs or fails."""

    def __init__(self, events=(), hang=False, fail=None):
        super().__init__()
        self.events = list(events)
        self.hang = hang
        self.fail = fail
        self.prompt = None
        self.cancelled = False

    async def send_and_wait(self, prompt):
        self.prompt = prompt
        last = None
        for event in self.events:
            if event.type == "assistant.message":
                last = event
            self.emit(event)
        if self.fail is not None:
            raise self.fail
        if self.hang:
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return last


SCRIPT = [
    SessionEvent("session.start", {"sessionId": "s-1", "selectedModel": "gpt-5"}),
    SessionEvent("assistant.turn_start"),
    SessionEvent("tool.execution_start", {"toolName": "bash"}),
    SessionEvent("tool.execution_complete", {"toolName": "bash"}),
    SessionEvent("assistant.message_delta", {"deltaContent": "Hello "}),
    SessionEvent("assistant.message_delta", {"deltaContent": "world"}),
    SessionEvent("assistant.usage", {"inputTokens": 100, "outputTokens": 20}),
    SessionEvent("assistant.message", {"content": "Hello world"}),
]


@pytest.fixture
def prompt_file(tmp_path) -> Path:
    path = tmp_path / "prompt.txt"
    path.write_text("Summarize the repository.")
    return path


@pytest.fixture
def make_config(tmp_path, prompt_file):
    def _make(**overrides) -> RunnerConfig:
        data = {
            "prompt_file": str(prompt_file),
            "metrics_file": str(tmp_path / "logs" / "sdk-metrics.json"),
        }
        data.update(overrides)
        return RunnerConfig(**data)

    return _make


def factory_for(session, calls=None):
    def _factory(config, mcp_servers):
        if calls is not None:
            calls.append(mcp_servers)
        return session

    return _factory


class TestReadPrompt:
    def test_reads_prompt(self, prompt_file):
        assert read_prompt(str(prompt_file)) == "Summarize the repository."

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            read_prompt(str(tmp_path / "nope.txt"))
        assert exc_info.value.field == "prompt_file"

    def test_empty(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("  \n")
        with pytest.raises(ConfigurationError):
            read_prompt(str(path))

    def test_unreadable(self, tmp_path):
        path = tmp_path / "binary.txt"
        path.write_bytes(b"\xff\xfe bad")
        for target in (path, tmp_path):
            with pytest.raises(ConfigurationError) as exc_info:
                read_prompt(str(target))
            assert exc_info.value.field == "prompt_file"


class TestRun:
    def test_successful_run_streams_and_collects_metrics(self, make_config, tmp_path):
        session = FakeSession(SCRIPT)
        output = io.StringIO()
        runner = Runner(make_config(streaming=True), session_factory=factory_for(session), output=output)

        metrics = asyncio.run(runner.run())

        assert session.prompt == "Summarize the repository."
        assert output.getvalue() == "Hello world"
        assert metrics.turns == 1
        assert metrics.tool_calls == {"bash": 1}
        assert metrics.total_tokens == 120
        assert metrics.session_id == "s-1"
        assert runner.last_message.get("content") == "Hello world"

        written = json.loads((tmp_path / "logs" / "sdk-metrics.json").read_text())
        assert written["total_tokens"] == 120
        assert written["end_time"] is not None

    def test_non_streaming_prints_final_message(self, make_config):
        output = io.StringIO()
        runner = Runner(make_config(), session_factory=factory_for(FakeSession(SCRIPT)), output=output)
        asyncio.run(runner.run())
        assert output.getvalue() == "Hello world\n"

    def test_handlers_unsubscribed_after_run(self, make_config):
        session = FakeSession(SCRIPT)
        asyncio.run(Runner(make_config(), session_factory=factory_for(session), output=io.StringIO()).run())
        assert session._handlers == []

    def test_mcp_servers_passed_to_session(self, make_config, tmp_path):
        mcp = tmp_path / "mcp.json"
        mcp.write_text(json.dumps({"mcpServers": {"github": {"type": "http", "url": "https://x"}}}))
        calls = []
        runner = Runner(
            make_config(mcp_config_path=str(mcp)),
            session_factory=factory_for(FakeSession(), calls),
            output=io.StringIO(),
        )
        asyncio.run(runner.run())
        assert calls == [{"github": {"type": "http", "url": "https://x"}}]

    def test_missing_prompt_still_flushes_metrics(self, make_config, tmp_path):
        calls = []
        config = make_config(prompt_file=str(tmp_path / "missing.txt"))
        runner = Runner(config, session_factory=factory_for(FakeSession(), calls))
        with pytest.raises(ConfigurationError):
            asyncio.run(runner.run())
        assert calls == []
        assert (tmp_path / "logs" / "sdk-metrics.json").exists()

    def test_session_failure_propagates_after_flush(self, make_config, tmp_path):
        session = FakeSession(SCRIPT[:3], fail=RunnerFailure("agent exited with code 2", exit_code=2))
        runner = Runner(make_config(), session_factory=factory_for(session), output=io.StringIO())
        with pytest.raises(RunnerFailure) as exc_info:
            asyncio.run(runner.run())
        assert exc_info.value.exit_code == 2
        written = json.loads((tmp_path / "logs" / "sdk-metrics.json").read_text())
        assert written["turns"] == 1

    def test_unwritable_metrics_file_is_a_warning(self, make_config, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config = make_config(metrics_file=str(blocker / "metrics.json"))
        runner = Runner(config, session_factory=factory_for(FakeSession(SCRIPT)), output=io.StringIO())
        asyncio.run(runner.run())
        assert "Failed to write metrics file" in caplog.text


class TestCancellation:
    def test_already_cancelled_never_starts_session(self, make_config, tmp_path):
        calls = []
        runner = Runner(make_config(), session_factory=factory_for(FakeSession(), calls))

        async def run():
            event = asyncio.Event()
            event.set()
            return await runner.run(event)

        with pytest.raises(RunnerCancelled) as exc_info:
            asyncio.run(run())
        assert exc_info.value.classification == "cancelled"
        assert calls == []
        assert (tmp_path / "logs" / "sdk-metrics.json").exists()

    def test_cancel_during_session(self, make_config):
        session = FakeSession(SCRIPT[:2], hang=True)
        runner = Runner(make_config(), session_factory=factory_for(session), output=io.StringIO())

        async def run():
            event = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, event.set)
            return await runner.run(event)

        with pytest.raises(RunnerCancelled) as exc_info:
            asyncio.run(run())
        assert not isinstance(exc_info.value, RunnerDeadlineExceeded)
        assert session.cancelled
        assert "session cancelled" in runner.metrics.errors
        assert runner.metrics.end_time is not None

    def test_deadline(self, make_config):
        session = FakeSession(hang=True)
        runner = Runner(make_config(timeout=1), session_factory=factory_for(session), output=io.StringIO())
        with pytest.raises(RunnerDeadlineExceeded) as exc_info:
            asyncio.run(runner.run(None))
        assert exc_info.value.classification == "deadline_exceeded"
        assert exc_info.value.timeout_seconds == 1
        assert session.cancelled
        assert runner.metrics.errors == ["session timed out after 1s"]

    def test_task_cancellation_propagates(self, make_config, tmp_path):
        session = FakeSession(hang=True)
        runner = Runner(make_config(), session_factory=factory_for(session), output=io.StringIO())

        async def run():
            task = asyncio.ensure_future(runner.run(asyncio.Event()))
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run())
        assert session.cancelled
        assert (tmp_path / "logs" / "sdk-metrics.json").exists()


class TestParseEventLine:
    def test_typed_event_with_data(self):
        event = parse_event_line('{"type": "assistant.usage", "data": {"inputTokens": 5}}')
        assert event == SessionEvent("assistant.usage", {"inputTokens": 5})

    def test_typed_event_flat_payload(self):
        event = parse_event_line('{"type": "tool.execution_start", "toolName": "bash"}')
        assert event.get("tool_name", "toolName") == "bash"

    def test_plain_text_is_message_delta(self):
        event = parse_event_line("just text")
        assert event.type == "assistant.message_delta"
        assert event.get("delta_content") == "just text\n"

    def test_json_without_type_is_text(self):
        assert parse_event_line("[1, 2]").type == "assistant.message_delta"

    def test_blank_line(self):
        assert parse_event_line("   ") is None


class TestCliAgentSession:
    def test_build_args_unrestricted(self, make_config):
        args = CliAgentSession(make_config(model="gpt-5")).build_args("do it")
        assert args[0] == "copilot"
        assert "--allow-all-tools" in args
        assert args[args.index("--model") + 1] == "gpt-5"
        assert args[-2:] == ["--prompt", "do it"]

    def test_build_args_restricted(self, make_config):
        config = make_config(available_tools=["shell(git)", "write"], excluded_tools=["web_fetch"])
        args = CliAgentSession(config).build_args("p")
        assert "--allow-all-tools" not in args
        assert args.count("--allow-tool") == 2
        assert args[args.index("--deny-tool") + 1] == "web_fetch"

    def test_build_args_no_tools(self, make_config):
        args = CliAgentSession(make_config(available_tools=[])).build_args("p")
        assert "--allow-tool" not in args
        assert "--allow-all-tools" not in args

    def test_build_args_mcp(self, make_config):
        servers = {"github": {"type": "http"}}
        args = CliAgentSession(make_config(), servers).build_args("p")
        assert json.loads(args[args.index("--additional-mcp-config") + 1]) == {"mcpServers": servers}

    def test_build_env(self, make_config):
        env = CliAgentSession(make_config(github_token="tok", env={"EXTRA": "1"})).build_env()
        assert env["COPILOT_GITHUB_TOKEN"] == "tok"
        assert env["EXTRA"] == "1"


@pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")
class TestCliAgentSessionProcess:
    """CliAgentSession against a scripted fake agent CLI."""

    def write_agent(self, tmp_path, body: str) -> str:
        path = tmp_path / "fake-agent"
        path.write_text("#!/bin/sh\n" + body)
        os.chmod(path, 0o755)
        return str(path)

    def test_events_and_last_message(self, make_config, tmp_path):
        cli = self.write_agent(
            tmp_path,
            "echo '{\"type\": \"assistant.turn_start\"}'\n"
            "echo 'plain output'\n"
            "echo '{\"type\": \"assistant.message\", \"data\": {\"content\": \"done\"}}'\n",
        )
        session = CliAgentSession(make_config(cli_path=cli))
        seen = []
        session.on(lambda event: seen.append(event.type))

        last = asyncio.run(session.send_and_wait("p"))

        assert last.get("content") == "done"
        assert seen == [
            "assistant.turn_start",
            "assistant.message_delta",
            "assistant.message",
            "session.idle",
        ]

    def test_non_zero_exit(self, make_config, tmp_path):
        cli = self.write_agent(tmp_path, "echo 'auth failed' >&2\nexit 3\n")
        session = CliAgentSession(make_config(cli_path=cli))
        seen = []
        session.on(lambda event: seen.append(event))

        with pytest.raises(RunnerFailure) as exc_info:
            asyncio.run(session.send_and_wait("p"))

        assert exc_info.value.exit_code == 3
        assert seen[-1].type == "session.error"
        assert seen[-1].get("message") == "auth failed"

    def test_missing_binary_reports_session_error(self, make_config, tmp_path):
        session = CliAgentSession(make_config(cli_path=str(tmp_path / "no-such-cli")))
        seen = []
        session.on(seen.append)
        with pytest.raises(RunnerFailure):
            asyncio.run(session.send_and_wait("p"))
        assert [e.type for e in seen] == ["session.error"]
        assert "failed to start" in seen[0].get("message")

    def test_line_longer_than_stream_limit(self, make_config, tmp_path):
        cli = self.write_agent(
            tmp_path,
            "head -c 5000000 /dev/zero | tr '\\0' 'a'\n"
            "echo\n"
            "echo '{\"type\": \"assistant.message\", \"data\": {\"content\": \"done\"}}'\n",
        )
        session = CliAgentSession(make_config(cli_path=cli))
        deltas = []
        session.on(lambda event: deltas.append(event) if event.type == "assistant.message_delta" else None)

        last = asyncio.run(session.send_and_wait("p"))

        assert last.get("content") == "done"
        assert len(deltas) == 1
        assert len(deltas[0].get("delta_content")) == 5000001

    def test_read_failure_terminates_agent(self, make_config, tmp_path):
        cli = self.write_agent(tmp_path, "echo 'first line'\nexec sleep 30\n")
        session = CliAgentSession(make_config(cli_path=cli))
        seen = []

        def handler(event):
            seen.append(event)
            if event.type == "assistant.message_delta":
                raise ValueError("handler broke")

        session.on(handler)

        with pytest.raises(RunnerFailure, match="handler broke"):
            asyncio.run(session.send_and_wait("p"))

        assert session._process.returncode is not None
        assert seen[-1].type == "session.error"


class TestIterLines:
    def read_all(self, data: bytes, limit: int):
        async def run():
            stream = asyncio.StreamReader(limit=limit)
            stream.feed_data(data)
            stream.feed_eof()
            return [line async for line in iter_lines(stream)]

        return asyncio.run(run())

    def test_short_lines(self):
        assert self.read_all(b"a\nbb\n", limit=64) == [b"a\n", b"bb\n"]

    def test_unterminated_last_line(self):
        assert self.read_all(b"a\ntail", limit=64) == [b"a\n", b"tail"]

    def test_lines_over_limit_are_reassembled(self):
        long_line = b"x" * 100 + b"\n"
        assert self.read_all(long_line + b"short\n", limit=16) == [long_line, b"short\n"]
