"""
errors.py - Error types shared by the workflow compiler.

Compiler errors abort the whole compilation call; callers never receive a
partial step list. ValidationIssue is the non-fatal counterpart: problems
recovered locally are recorded on the workflow model and logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional


class AwflowError(Exception):
    """Base exception for awflow errors."""

    pass


class ConfigurationError(AwflowError):
    """Raised when a required input is missing or malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class UnknownEngineError(ConfigurationError):
    """Raised when a workflow selects an engine that is not registered."""

    def __init__(self, engine_id: str, valid_ids: Iterable[str]):
        self.engine_id = engine_id
        self.valid_ids = sorted(valid_ids)
        super().__init__(
            "engine",
            f"unknown engine '{engine_id}'. Valid engines: {', '.join(self.valid_ids)}",
        )


class SecretLeakageError(AwflowError):
    """Raised when a compiled step references a secret its engine did not declare."""

    def __init__(self, step_name: str, names: List[str]):
        self.step_name = step_name
        self.names = sorted(names)
        super().__init__(
            f"step '{step_name}' references undeclared secrets: {', '.join(self.names)}"
        )


@dataclass
class ValidationIssue:
    """A recovered, non-fatal problem found in a workflow declaration."""

    path: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"
