"""
types.py - Dataclasses for the engine-agnostic workflow model.

A WorkflowModel is the normalized input to every engine. It is built once per
compilation call (usually by workflow_from_dict), never mutated, and discarded
after the steps are produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from awflow.errors import ConfigurationError, ValidationIssue

from .validation import validate_workflow_dict

logger = logging.getLogger(__name__)

# Keys that mark a tool declaration as an external tool-provider (MCP) server
MCP_CONFIG_KEYS = ("command", "url", "container", "type")

# Tools backed by a built-in tool-provider server
BUILTIN_MCP_TOOLS = ("github", "playwright")

# Configuration keys that live under `tools` but are not tools
TOOL_SETTING_KEYS = ("startup-timeout", "timeout")


# =============================================================================
# Engine and Sandbox Configuration
# =============================================================================


@dataclass(frozen=True)
class EngineConfig:
    """Engine selection plus per-workflow overrides."""
    id: str = "copilot"
    version: Optional[str] = None
    model: Optional[str] = None
    command: Optional[str] = None
    max_turns: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    mounts: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()
    steps: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class FirewallConfig:
    """Network firewall (AWF) settings."""
    enabled: bool = True
    version: Optional[str] = None
    log_level: Optional[str] = None
    ssl_bump: bool = False
    allow_urls: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworkPermissions:
    """Allowed and blocked egress domains.

    The keyword "defaults" in `allowed` expands to the basic infrastructure
    domain set.
    """
    allowed: Tuple[str, ...] = ("defaults",)
    blocked: Tuple[str, ...] = ()
    firewall: Optional[FirewallConfig] = None


@dataclass(frozen=True)
class AgentSandboxConfig:
    """Agent overrides applied to the sandbox wrapper."""
    command: Optional[str] = None
    mounts: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SafeOutputsConfig:
    """Configured safe-output types.

    Presence of the config drives the safe-output env markers; `enabled`
    (at least one output type) drives the capability token.
    """
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return bool(self.outputs)


@dataclass(frozen=True)
class SafeInputsConfig:
    """Declared safe-input tools, keyed by tool name."""
    tools: Dict[str, Any] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return bool(self.tools)


# =============================================================================
# Workflow Model
# =============================================================================


@dataclass(frozen=True)
class WorkflowModel:
    """Normalized workflow description consumed by the engines."""
    name: str = ""
    engine: EngineConfig = field(default_factory=EngineConfig)
    tools: Dict[str, Any] = field(default_factory=dict)
    network: Optional[NetworkPermissions] = None
    sandbox: Optional[AgentSandboxConfig] = None
    safe_outputs: Optional[SafeOutputsConfig] = None
    safe_inputs: Optional[SafeInputsConfig] = None
    timeout_minutes: Optional[int] = None
    github_token: Optional[str] = None
    tools_startup_timeout: Optional[int] = None
    tools_timeout: Optional[int] = None
    plugins: Tuple[str, ...] = ()
    plugins_github_token: Optional[str] = None
    issues: Tuple[ValidationIssue, ...] = ()

    @property
    def safe_outputs_enabled(self) -> bool:
        return self.safe_outputs is not None and self.safe_outputs.enabled

    @property
    def safe_inputs_enabled(self) -> bool:
        return self.safe_inputs is not None and self.safe_inputs.enabled

    @property
    def firewall(self) -> Optional[FirewallConfig]:
        if self.network is None:
            return None
        return self.network.firewall

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    def has_mcp_servers(self) -> bool:
        """True when any tool-provider server will be started for the agent."""
        if self.safe_outputs_enabled or self.safe_inputs_enabled:
            return True
        for name, value in self.tools.items():
            if name in BUILTIN_MCP_TOOLS or is_mcp_tool(value):
                return True
        return False


def is_mcp_tool(value: Any) -> bool:
    """True if a tool declaration configures an external tool-provider server."""
    return isinstance(value, dict) and any(key in value for key in MCP_CONFIG_KEYS)


# =============================================================================
# Parsing
# =============================================================================


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(field_name, f"must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ConfigurationError(field_name, f"must be an integer, got {value!r}")


def _optional_str(value: Any, field_name: str) -> Optional[str]:
    """String field or None; values of another type are dropped."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    logger.warning("Ignoring %s: expected a string, got %s", field_name, type(value).__name__)
    return None


def _string_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if isinstance(v, str))


def _string_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def engine_config_from_value(value: Any) -> EngineConfig:
    """Parse the `engine` field (a bare id or a mapping)."""
    if value is None:
        return EngineConfig()
    if isinstance(value, str):
        if not value.strip():
            raise ConfigurationError("engine", "engine id must not be empty")
        return EngineConfig(id=value.strip())
    if not isinstance(value, dict):
        raise ConfigurationError("engine", f"expected a string or mapping, got {type(value).__name__}")
    engine_id = value.get("id")
    if not isinstance(engine_id, str) or not engine_id.strip():
        raise ConfigurationError("engine.id", "engine id is required")

    version = value.get("version")
    max_turns = value.get("max-turns")
    steps = value.get("steps") or []
    return EngineConfig(
        id=engine_id.strip(),
        version=str(version) if version is not None else None,
        model=_optional_str(value.get("model"), "engine.model"),
        command=_optional_str(value.get("command"), "engine.command"),
        max_turns=str(_optional_int(max_turns, "engine.max-turns")) if max_turns is not None else None,
        env=_string_map(value.get("env")),
        mounts=_string_tuple(value.get("mounts")),
        args=_string_tuple(value.get("args")),
        steps=tuple(s for s in steps if isinstance(s, dict)),
    )


def firewall_from_value(value: Any) -> Optional[FirewallConfig]:
    """Parse `network.firewall` (true/false/"disable"/mapping)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return FirewallConfig(enabled=value)
    if isinstance(value, str):
        return FirewallConfig(enabled=value.lower() not in ("disable", "disabled", "false"))
    if not isinstance(value, dict):
        return None
    version = value.get("version")
    return FirewallConfig(
        enabled=bool(value.get("enabled", True)),
        version=str(version) if version is not None else None,
        log_level=_optional_str(value.get("log-level"), "network.firewall.log-level"),
        ssl_bump=bool(value.get("ssl-bump", False)),
        allow_urls=_string_tuple(value.get("allow-urls")),
        args=_string_tuple(value.get("args")),
    )


def network_from_value(value: Any) -> Optional[NetworkPermissions]:
    """Parse the `network` field."""
    if value is None:
        return None
    if value == "defaults":
        return NetworkPermissions()
    if not isinstance(value, dict):
        return None
    allowed = value.get("allowed")
    return NetworkPermissions(
        allowed=_string_tuple(allowed) if allowed is not None else ("defaults",),
        blocked=_string_tuple(value.get("blocked")),
        firewall=firewall_from_value(value.get("firewall")),
    )


def agent_sandbox_from_value(value: Any) -> Optional[AgentSandboxConfig]:
    """Parse `sandbox.agent` overrides.

    `sandbox: {agent: {command, mounts, args, env}}`; the string form
    (`agent: awf`) selects the default wrapper with no overrides.
    """
    if not isinstance(value, dict):
        return None
    agent = value.get("agent")
    if isinstance(agent, str):
        return AgentSandboxConfig()
    if not isinstance(agent, dict):
        return None
    return AgentSandboxConfig(
        command=_optional_str(agent.get("command"), "sandbox.agent.command"),
        mounts=_string_tuple(agent.get("mounts")),
        args=_string_tuple(agent.get("args")),
        env=_string_map(agent.get("env")),
    )


def _plugins_from_value(value: Any) -> Tuple[Tuple[str, ...], Optional[str]]:
    if isinstance(value, list):
        return _string_tuple(value), None
    if isinstance(value, dict):
        token = _optional_str(value.get("github-token"), "plugins.github-token")
        return _string_tuple(value.get("repos")), token
    return (), None


def workflow_from_dict(data: Optional[Dict[str, Any]]) -> WorkflowModel:
    """Parse a WorkflowModel from a dictionary (e.g., YAML frontmatter).

    Raises:
        ConfigurationError: If a required field is missing or a scalar field
            has the wrong type.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("workflow", f"expected a mapping, got {type(data).__name__}")

    issues: List[ValidationIssue] = validate_workflow_dict(data)

    tools_raw = data.get("tools")
    tools: Dict[str, Any] = dict(tools_raw) if isinstance(tools_raw, dict) else {}
    startup_timeout = _optional_int(tools.pop("startup-timeout", None), "tools.startup-timeout")
    tools_timeout = _optional_int(tools.pop("timeout", None), "tools.timeout")

    safe_outputs = None
    if "safe-outputs" in data:
        outputs = data.get("safe-outputs")
        safe_outputs = SafeOutputsConfig(outputs=dict(outputs) if isinstance(outputs, dict) else {})

    safe_inputs = None
    if "safe-inputs" in data:
        declared = data.get("safe-inputs")
        safe_inputs = SafeInputsConfig(tools=dict(declared) if isinstance(declared, dict) else {})

    plugins, plugins_token = _plugins_from_value(data.get("plugins"))

    return WorkflowModel(
        name=str(data.get("name", "")),
        engine=engine_config_from_value(data.get("engine")),
        tools=tools,
        network=network_from_value(data.get("network")),
        sandbox=agent_sandbox_from_value(data.get("sandbox")),
        safe_outputs=safe_outputs,
        safe_inputs=safe_inputs,
        timeout_minutes=_optional_int(data.get("timeout-minutes"), "timeout-minutes"),
        github_token=_optional_str(data.get("github-token"), "github-token"),
        tools_startup_timeout=startup_timeout,
        tools_timeout=tools_timeout,
        plugins=plugins,
        plugins_github_token=plugins_token,
        issues=tuple(issues),
    )
