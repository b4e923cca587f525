"""
registry.py - Engine registry.

The engine set is closed: one dispatch table, built once and read-only
afterwards, maps engine identifiers to engine instances.

Usage:
    from awflow.engines.registry import get_default_registry

    registry = get_default_registry()
    engine = registry.get("copilot-sdk")
    compiled = registry.compile(workflow, "/tmp/gh-aw/agent-stdio.log")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from awflow.errors import SecretLeakageError, UnknownEngineError
from awflow.workflow.types import WorkflowModel

from .base import AgentEngine
from .claude import ClaudeEngine
from .codex import CodexEngine
from .copilot import CopilotEngine
from .copilot_sdk import CopilotSDKEngine
from .models import Step
from .secrets import references_secret

logger = logging.getLogger(__name__)

ENGINE_CLASSES: Tuple[Type[AgentEngine], ...] = (
    CopilotEngine,
    CopilotSDKEngine,
    ClaudeEngine,
    CodexEngine,
)


@dataclass(frozen=True)
class CompiledSteps:
    """Installation and execution steps for one workflow."""
    engine_id: str
    installation: Tuple[Step, ...]
    execution: Tuple[Step, ...]

    @property
    def steps(self) -> List[Step]:
        return [*self.installation, *self.execution]


def audit_secret_containment(steps: Iterable[Step], allowed_names: Iterable[str]) -> None:
    """Verify no step env references a secret outside the declared names.

    Raises:
        SecretLeakageError: On the first offending step.
    """
    allowed = set(allowed_names)
    for step in steps:
        leaked = [key for key, value in step.env.items() if references_secret(value) and key not in allowed]
        if leaked:
            raise SecretLeakageError(step.name, leaked)


class EngineRegistry:
    """Read-only table of the available engines."""

    def __init__(
        self,
        engine_classes: Iterable[Type[AgentEngine]] = ENGINE_CLASSES,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        table: Dict[str, AgentEngine] = {}
        for cls in engine_classes:
            engine = cls(logger=self.logger.getChild(cls.__name__))
            table[engine.engine_id] = engine
        self._engines: Mapping[str, AgentEngine] = MappingProxyType(table)

    @property
    def engines(self) -> Mapping[str, AgentEngine]:
        return self._engines

    def engine_ids(self) -> List[str]:
        return sorted(self._engines)

    def get(self, engine_id: str) -> AgentEngine:
        """Look up an engine by identifier (case-insensitive).

        Raises:
            UnknownEngineError: If no engine has that identifier.
        """
        engine = self._engines.get((engine_id or "").strip().lower())
        if engine is None:
            raise UnknownEngineError(engine_id, self._engines)
        return engine

    def list_engines(self) -> List[Dict[str, Any]]:
        """Metadata for every engine, ordered by identifier."""
        return [self._engines[engine_id].metadata() for engine_id in self.engine_ids()]

    def compile(self, workflow: WorkflowModel, log_file: str) -> CompiledSteps:
        """Compile installation and execution steps with the workflow's engine.

        Raises:
            UnknownEngineError: If the workflow selects an unknown engine.
            ConfigurationError: If a required input is missing.
            SecretLeakageError: If a generated step references an
                undeclared secret.
        """
        engine = self.get(workflow.engine.id)
        installation = engine.installation_steps(workflow)
        execution = engine.execution_steps(workflow, log_file)

        # Custom pre-steps are caller-authored and exempt from the audit
        generated = installation + execution[len(workflow.engine.steps):]
        audit_secret_containment(generated, engine.required_secret_names(workflow))

        self.logger.info(
            "Compiled workflow '%s' with engine %s: %d installation step(s), %d execution step(s)",
            workflow.name,
            engine.engine_id,
            len(installation),
            len(execution),
        )
        return CompiledSteps(
            engine_id=engine.engine_id,
            installation=tuple(installation),
            execution=tuple(execution),
        )


@lru_cache(maxsize=1)
def get_default_registry() -> EngineRegistry:
    """The process-wide registry of built-in engines."""
    return EngineRegistry()


def get_engine(engine_id: str) -> AgentEngine:
    """Shortcut for get_default_registry().get(engine_id)."""
    return get_default_registry().get(engine_id)


def list_available_engines() -> List[Dict[str, Any]]:
    """Shortcut for get_default_registry().list_engines()."""
    return get_default_registry().list_engines()
