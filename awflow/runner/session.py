"""
session.py - Agent sessions driven by the runner.

A session delivers a prompt to the agent and publishes SessionEvents to its
subscribers while the agent works. CliAgentSession runs the agent CLI as a
subprocess and turns each JSONL line on stdout into an event; plain text
lines are published as message deltas.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .config import RunnerConfig
from .errors import RunnerFailure

logger = logging.getLogger(__name__)

SESSION_START = "session.start"
SESSION_ERROR = "session.error"
SESSION_IDLE = "session.idle"
ASSISTANT_TURN_START = "assistant.turn_start"
ASSISTANT_MESSAGE = "assistant.message"
ASSISTANT_MESSAGE_DELTA = "assistant.message_delta"
ASSISTANT_USAGE = "assistant.usage"
TOOL_EXECUTION_START = "tool.execution_start"
TOOL_EXECUTION_COMPLETE = "tool.execution_complete"

# asyncio.StreamReader buffer limit; longer lines are read in pieces
_STREAM_LIMIT = 4 * 1024 * 1024


@dataclass(frozen=True)
class SessionEvent:
    """One event published by an agent session."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, *keys: str) -> Any:
        """First present value among alternative key spellings."""
        for key in keys:
            if key in self.data and self.data[key] is not None:
                return self.data[key]
        return None


EventHandler = Callable[[SessionEvent], None]


def parse_event_line(line: str) -> Optional[SessionEvent]:
    """Parse one stdout line into an event.

    JSON objects with a `type` become typed events (payload under `data`, or
    the remaining keys); anything else is published as message text.
    """
    stripped = line.strip()
    if not stripped:
        return None
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return SessionEvent(ASSISTANT_MESSAGE_DELTA, {"delta_content": line + "\n"})

    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        return SessionEvent(ASSISTANT_MESSAGE_DELTA, {"delta_content": line + "\n"})
    data = payload.get("data")
    if not isinstance(data, dict):
        data = {k: v for k, v in payload.items() if k != "type"}
    return SessionEvent(payload["type"], data)


async def iter_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield newline-terminated lines, reassembling lines longer than the limit."""
    buffer = bytearray()
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            buffer.extend(e.partial)
            if buffer:
                yield bytes(buffer)
            return
        except asyncio.LimitOverrunError as e:
            buffer.extend(await stream.readexactly(e.consumed))
            continue
        buffer.extend(chunk)
        yield bytes(buffer)
        buffer.clear()


class EventPublisher:
    """Subscriber list shared by session implementations."""

    def __init__(self) -> None:
        self._handlers: List[EventHandler] = []

    def on(self, handler: EventHandler) -> Callable[[], None]:
        """Subscribe a handler; returns a function that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: SessionEvent) -> None:
        for handler in list(self._handlers):
            handler(event)


class CliAgentSession(EventPublisher):
    """Session backed by one agent CLI subprocess."""

    def __init__(
        self,
        config: RunnerConfig,
        mcp_servers: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()
        self.config = config
        self.mcp_servers = mcp_servers
        self.logger = logger or logging.getLogger(__name__)
        self._process: Optional[asyncio.subprocess.Process] = None

    def build_args(self, prompt: str) -> List[str]:
        config = self.config
        args = [config.cli_path, "--log-level", config.log_level]
        if config.log_dir:
            args.extend(["--log-dir", config.log_dir])
        if config.model:
            args.extend(["--model", config.model])

        if config.available_tools is None:
            args.append("--allow-all-tools")
        else:
            for tool in config.available_tools:
                args.extend(["--allow-tool", tool])
        for tool in config.excluded_tools or []:
            args.extend(["--deny-tool", tool])

        if self.mcp_servers:
            args.extend(["--additional-mcp-config", json.dumps({"mcpServers": self.mcp_servers})])
        args.extend(["--prompt", prompt])
        return args

    def build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.config.env)
        if self.config.github_token:
            env["COPILOT_GITHUB_TOKEN"] = self.config.github_token
        return env

    async def send_and_wait(self, prompt: str) -> Optional[SessionEvent]:
        """Run the agent on the prompt until it exits.

        Returns:
            The last assistant message event, if any.

        Raises:
            RunnerFailure: If the CLI cannot start, its output cannot be read,
                or it exits non-zero.
        """
        args = self.build_args(prompt)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.config.working_directory or None,
                env=self.build_env(),
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            message = f"failed to start {args[0]}: {e}"
            self.emit(SessionEvent(SESSION_ERROR, {"message": message}))
            raise RunnerFailure(message) from e

        process = self._process
        self.logger.info("Started %s (pid %s)", args[0], process.pid)
        stderr_task = asyncio.ensure_future(process.stderr.read())
        last_message: Optional[SessionEvent] = None
        try:
            async for raw in iter_lines(process.stdout):
                event = parse_event_line(raw.decode("utf-8", errors="replace").rstrip("\n"))
                if event is None:
                    continue
                if event.type == ASSISTANT_MESSAGE:
                    last_message = event
                self.emit(event)
            returncode = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
        except asyncio.CancelledError:
            stderr_task.cancel()
            await self.terminate()
            raise
        except Exception as e:
            stderr_task.cancel()
            await self.terminate()
            message = f"reading output of {args[0]} failed: {e}"
            self.emit(SessionEvent(SESSION_ERROR, {"message": message}))
            raise RunnerFailure(message) from e

        if returncode != 0:
            message = stderr[-500:] or f"exit code {returncode}"
            self.emit(SessionEvent(SESSION_ERROR, {"message": message}))
            raise RunnerFailure(f"{args[0]} exited with code {returncode}: {message}", exit_code=returncode)

        self.emit(SessionEvent(SESSION_IDLE))
        return last_message

    async def terminate(self) -> None:
        """Kill the subprocess if it is still running."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        self.logger.warning("Terminating agent process %s", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            # exited between the check and the kill
            return
        await process.wait()
