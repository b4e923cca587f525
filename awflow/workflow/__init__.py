"""Workflow model and parsing."""

from .loader import load_workflow, parse_workflow_text
from .types import (
    AgentSandboxConfig,
    EngineConfig,
    FirewallConfig,
    NetworkPermissions,
    SafeInputsConfig,
    SafeOutputsConfig,
    WorkflowModel,
    is_mcp_tool,
    workflow_from_dict,
)

__all__ = [
    "AgentSandboxConfig",
    "EngineConfig",
    "FirewallConfig",
    "NetworkPermissions",
    "SafeInputsConfig",
    "SafeOutputsConfig",
    "WorkflowModel",
    "is_mcp_tool",
    "load_workflow",
    "parse_workflow_text",
    "workflow_from_dict",
]
