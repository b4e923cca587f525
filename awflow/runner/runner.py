"""
runner.py - Agent session runner.

Runs one agent session from a RunnerConfig:

1. Read the prompt file (missing or empty is a configuration error)
2. Start the session with the configured model, tools and MCP servers
3. Stream assistant output and aggregate metrics from session events
4. Wait for completion, the timeout, or the cancellation signal
5. Finalize metrics and write the metrics file, on every exit path

Usage:
    from awflow.runner import Runner, load_config

    metrics = asyncio.run(Runner(load_config(path)).run(cancel_event))
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, TextIO

from awflow.errors import ConfigurationError

from .config import RunnerConfig, load_mcp_servers
from .errors import RunnerCancelled, RunnerDeadlineExceeded
from .metrics import RunnerMetrics
from .session import (
    ASSISTANT_MESSAGE,
    ASSISTANT_MESSAGE_DELTA,
    SESSION_ERROR,
    TOOL_EXECUTION_COMPLETE,
    TOOL_EXECUTION_START,
    CliAgentSession,
    EventHandler,
    SessionEvent,
)


class AgentSession(Protocol):
    def on(self, handler: EventHandler) -> Callable[[], None]: ...

    async def send_and_wait(self, prompt: str) -> Optional[SessionEvent]: ...


SessionFactory = Callable[[RunnerConfig, Optional[Dict[str, Any]]], AgentSession]


def read_prompt(path: str) -> str:
    """Read the prompt file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or empty.
    """
    prompt_path = Path(path)
    try:
        prompt = prompt_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError("prompt_file", f"prompt file not found: {prompt_path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError("prompt_file", f"cannot read prompt file {prompt_path}: {e}") from e
    if not prompt.strip():
        raise ConfigurationError("prompt_file", f"prompt file is empty: {prompt_path}")
    return prompt


class Runner:
    """Drives one agent session and collects its metrics."""

    def __init__(
        self,
        config: RunnerConfig,
        session_factory: Optional[SessionFactory] = None,
        logger: Optional[logging.Logger] = None,
        output: Optional[TextIO] = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._session_factory = session_factory or self._default_session
        self._output = output
        self.metrics = RunnerMetrics()
        self.last_message: Optional[SessionEvent] = None

    def _default_session(
        self, config: RunnerConfig, mcp_servers: Optional[Dict[str, Any]]
    ) -> AgentSession:
        return CliAgentSession(config, mcp_servers, logger=self.logger)

    @property
    def output(self) -> TextIO:
        return self._output or sys.stdout

    def _print_event(self, event: SessionEvent) -> None:
        if event.type == ASSISTANT_MESSAGE_DELTA and self.config.streaming:
            self.output.write(event.get("delta_content", "deltaContent") or "")
            self.output.flush()
        elif event.type == TOOL_EXECUTION_START:
            self.logger.info("Executing tool: %s", event.get("tool_name", "toolName"))
        elif event.type == TOOL_EXECUTION_COMPLETE:
            self.logger.info("Tool complete: %s", event.get("tool_name", "toolName"))
        elif event.type == SESSION_ERROR:
            self.logger.error("Session error: %s", event.get("message"))

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunnerMetrics:
        """Run the session to completion.

        Raises:
            ConfigurationError: If the prompt file is missing or empty, or
                the MCP config is invalid.
            RunnerCancelled: If cancel_event is set before or during the run.
            RunnerDeadlineExceeded: If the session outlives its timeout.
            RunnerFailure: If the agent process fails.
            asyncio.CancelledError: If the calling task is cancelled.
        """
        unsubscribers = []
        try:
            prompt = read_prompt(self.config.prompt_file)
            mcp_servers = load_mcp_servers(self.config.mcp_config_path)
            if cancel_event is not None and cancel_event.is_set():
                raise RunnerCancelled("cancelled before the session started")

            session = self._session_factory(self.config, mcp_servers)
            unsubscribers = [session.on(self.metrics.handle_event), session.on(self._print_event)]
            self.logger.info(
                "Starting session (model=%s, tools=%s, timeout=%ss)",
                self.config.model or "default",
                "all" if self.config.available_tools is None else len(self.config.available_tools),
                self.config.timeout_seconds,
            )
            self.last_message = await self._send_and_wait(session, prompt, cancel_event)
            if self.last_message is not None and not self.config.streaming:
                self.output.write((self.last_message.get("content") or "") + "\n")
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            self._flush_metrics()
        return self.metrics

    async def _send_and_wait(
        self,
        session: AgentSession,
        prompt: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[SessionEvent]:
        timeout = self.config.timeout_seconds
        send = asyncio.ensure_future(session.send_and_wait(prompt))
        waiters = {send}
        cancel_wait = None
        if cancel_event is not None:
            cancel_wait = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if send in done:
            return send.result()

        send.cancel()
        await asyncio.gather(send, return_exceptions=True)
        if cancel_wait is not None and cancel_wait in done:
            self.metrics.record_error("session cancelled")
            raise RunnerCancelled("cancelled during the session")
        self.metrics.record_error(f"session timed out after {timeout}s")
        raise RunnerDeadlineExceeded(timeout)

    def _flush_metrics(self) -> None:
        self.metrics.finalize()
        self.metrics.log_summary(self.logger)
        if not self.config.metrics_file:
            return
        try:
            self.metrics.write_to_file(self.config.metrics_file)
            self.logger.info("Metrics written to %s", self.config.metrics_file)
        except OSError as e:
            self.logger.warning("Failed to write metrics file %s: %s", self.config.metrics_file, e)
