"""
metrics.py - Session metrics aggregation.

Events may be delivered from more than one thread, so every update happens
under a single lock.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .session import (
    ASSISTANT_TURN_START,
    ASSISTANT_USAGE,
    SESSION_ERROR,
    SESSION_START,
    TOOL_EXECUTION_START,
    SessionEvent,
)

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class RunnerMetrics:
    """Token, turn, tool-call and error counters for one session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.input_tokens = 0
        self.output_tokens = 0
        self.total_tokens = 0
        self.turns = 0
        self.tool_calls: Dict[str, int] = {}
        self.total_tool_calls = 0
        self.start_time = datetime.now(timezone.utc)
        self.end_time: Optional[datetime] = None
        self.session_id: Optional[str] = None
        self.model: Optional[str] = None
        self.errors: List[str] = []

    def handle_event(self, event: SessionEvent) -> None:
        """Update counters from a session event (usable as a subscriber)."""
        with self._lock:
            if event.type == ASSISTANT_USAGE:
                model_metrics = event.get("model_metrics", "modelMetrics")
                if isinstance(model_metrics, dict):
                    for metric in model_metrics.values():
                        usage = metric.get("usage", {}) if isinstance(metric, dict) else {}
                        self.input_tokens += _as_int(usage.get("input_tokens", usage.get("inputTokens")))
                        self.output_tokens += _as_int(usage.get("output_tokens", usage.get("outputTokens")))
                self.input_tokens += _as_int(event.get("input_tokens", "inputTokens"))
                self.output_tokens += _as_int(event.get("output_tokens", "outputTokens"))
                self.total_tokens = self.input_tokens + self.output_tokens

            elif event.type == TOOL_EXECUTION_START:
                tool_name = event.get("tool_name", "toolName")
                if tool_name:
                    self.tool_calls[tool_name] = self.tool_calls.get(tool_name, 0) + 1
                    self.total_tool_calls += 1

            elif event.type == ASSISTANT_TURN_START:
                self.turns += 1

            elif event.type == SESSION_START:
                session_id = event.get("session_id", "sessionId")
                if session_id:
                    self.session_id = session_id
                model = event.get("selected_model", "selectedModel")
                if model:
                    self.model = model

            elif event.type == SESSION_ERROR:
                message = event.get("message")
                if message:
                    self.errors.append(str(message))

    def record_error(self, message: str) -> None:
        with self._lock:
            self.errors.append(message)

    def finalize(self) -> None:
        """Mark the end of the session."""
        with self._lock:
            self.end_time = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            data: Dict[str, Any] = {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.total_tokens,
                "turns": self.turns,
                "tool_calls": dict(self.tool_calls),
                "total_tool_calls": self.total_tool_calls,
                "start_time": self.start_time.isoformat(),
                "end_time": self.end_time.isoformat() if self.end_time else None,
                "duration_seconds": self.duration_seconds,
            }
            if self.session_id:
                data["session_id"] = self.session_id
            if self.model:
                data["model"] = self.model
            if self.errors:
                data["errors"] = list(self.errors)
            return data

    def write_to_file(self, path: Union[str, Path]) -> None:
        """Write the metrics as JSON.

        Raises:
            OSError: If the file cannot be written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    def log_summary(self, log: Optional[logging.Logger] = None) -> None:
        log = log or logger
        summary = self.to_dict()
        log.info(
            "Session metrics: model=%s turns=%d tokens=%d (input %d, output %d) tool_calls=%d duration=%ss",
            summary.get("model", "unknown"),
            summary["turns"],
            summary["total_tokens"],
            summary["input_tokens"],
            summary["output_tokens"],
            summary["total_tool_calls"],
            summary["duration_seconds"],
        )
        for tool in sorted(summary["tool_calls"]):
            log.info("  %s: %d", tool, summary["tool_calls"][tool])
        for error in summary.get("errors", []):
            log.warning("Session error: %s", error)
