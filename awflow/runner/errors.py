"""
errors.py - Runner failure classification.

Every runner error carries a classification so the process contract can
report cancellation and deadline expiry separately from ordinary failures.
"""

from __future__ import annotations

from awflow.errors import AwflowError


class RunnerError(AwflowError):
    """Base exception for runner failures."""

    classification = "failure"


class RunnerFailure(RunnerError):
    """The agent process failed (non-zero exit, unreadable output)."""

    def __init__(self, message: str, exit_code: int = 1):
        self.exit_code = exit_code
        super().__init__(message)


class RunnerCancelled(RunnerError):
    """The run was cancelled through the cancellation signal."""

    classification = "cancelled"


class RunnerDeadlineExceeded(RunnerCancelled):
    """The session did not finish within its timeout."""

    classification = "deadline_exceeded"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"session timed out after {timeout_seconds:g}s")
