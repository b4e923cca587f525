"""
Agent runtime for the copilot-sdk engine.

Reads the runner configuration compiled into the execution step and drives
one agent session, aggregating metrics from its events.
"""

from .config import RunnerConfig, load_config, load_mcp_servers, parse_config
from .errors import RunnerCancelled, RunnerDeadlineExceeded, RunnerError, RunnerFailure
from .metrics import RunnerMetrics
from .runner import Runner, read_prompt
from .session import CliAgentSession, SessionEvent, parse_event_line

__all__ = [
    "CliAgentSession",
    "Runner",
    "RunnerCancelled",
    "RunnerConfig",
    "RunnerDeadlineExceeded",
    "RunnerError",
    "RunnerFailure",
    "RunnerMetrics",
    "SessionEvent",
    "load_config",
    "load_mcp_servers",
    "parse_config",
    "parse_event_line",
    "read_prompt",
]
