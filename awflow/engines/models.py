"""
models.py - Value types produced by the engine compiler.

Step is the structured record every engine emits; rendering into a CI
document happens later, through Step.to_dict(). ToolPermissions is the
resolved capability-token set, tagged so that "unrestricted" can never be
confused with "restricted to nothing".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


# =============================================================================
# Steps
# =============================================================================


@dataclass(frozen=True)
class Step:
    """One CI step: either a shell `run` body or an action `uses` reference."""
    name: str
    run: Optional[str] = None
    id: Optional[str] = None
    timeout_minutes: Optional[int] = None
    env: Mapping[str, str] = field(default_factory=dict)
    uses: Optional[str] = None
    with_args: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "with_args", MappingProxyType(dict(self.with_args)))

    def to_dict(self) -> Dict[str, Any]:
        """Render the step with a fixed key order and sorted env keys."""
        result: Dict[str, Any] = {"name": self.name}
        if self.id:
            result["id"] = self.id
        if self.timeout_minutes is not None:
            result["timeout-minutes"] = self.timeout_minutes
        if self.uses:
            result["uses"] = self.uses
        if self.with_args:
            result["with"] = dict(self.with_args)
        if self.env:
            result["env"] = {key: self.env[key] for key in sorted(self.env)}
        if self.run is not None:
            result["run"] = self.run
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """Build a Step from a caller-supplied mapping (custom pre-steps)."""
        timeout = data.get("timeout-minutes")
        return cls(
            name=str(data.get("name", "")),
            run=data.get("run"),
            id=data.get("id"),
            timeout_minutes=int(timeout) if timeout is not None else None,
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            uses=data.get("uses"),
            with_args=dict(data.get("with") or {}),
        )


# =============================================================================
# Tool Permissions
# =============================================================================


@dataclass(frozen=True)
class ToolPermissions:
    """Resolved capability tokens for one engine invocation.

    Either unrestricted (all tools) or restricted to a sorted, deduplicated
    token tuple, which may be empty.
    """
    unrestricted: bool = False
    tokens: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.unrestricted and self.tokens:
            raise ValueError("unrestricted tool permissions cannot carry tokens")
        object.__setattr__(self, "tokens", tuple(sorted(set(self.tokens))))

    @classmethod
    def all_tools(cls) -> "ToolPermissions":
        return cls(unrestricted=True)

    @classmethod
    def only(cls, tokens: Iterable[str]) -> "ToolPermissions":
        return cls(unrestricted=False, tokens=tuple(tokens))

    def as_list(self) -> Optional[List[str]]:
        """Tokens as a list, or None when every tool is allowed."""
        if self.unrestricted:
            return None
        return list(self.tokens)

    def __contains__(self, token: str) -> bool:
        return self.unrestricted or token in self.tokens


# =============================================================================
# Engine Metadata
# =============================================================================


@dataclass(frozen=True)
class EngineCapabilities:
    """Feature flags an engine advertises."""
    tools_allowlist: bool = False
    http_transport: bool = False
    max_turns: bool = False
    web_fetch: bool = False
    web_search: bool = False
    firewall: bool = False
    plugins: bool = False
    llm_gateway: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "tools_allowlist": self.tools_allowlist,
            "http_transport": self.http_transport,
            "max_turns": self.max_turns,
            "web_fetch": self.web_fetch,
            "web_search": self.web_search,
            "firewall": self.firewall,
            "plugins": self.plugins,
            "llm_gateway": self.llm_gateway,
        }


@dataclass(frozen=True)
class AgentCommand:
    """An engine's invocation: setup lines followed by the agent command."""
    command: str
    setup_lines: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ErrorPattern:
    """A log pattern the log parser reports as an error."""
    pattern: str
    description: str
    message_group: int = 1
