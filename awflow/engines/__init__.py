"""
Agent engines for the workflow compiler.

Each engine turns a WorkflowModel into installation and execution steps for
one agent backend:
- copilot: GitHub Copilot CLI
- copilot-sdk: GitHub Copilot SDK runner (experimental)
- claude: Claude Code CLI
- codex: OpenAI Codex CLI (experimental)
"""

from .base import AgentEngine
from .claude import ClaudeEngine
from .codex import CodexEngine
from .copilot import CopilotEngine
from .copilot_sdk import CopilotSDKEngine
from .models import AgentCommand, EngineCapabilities, ErrorPattern, Step, ToolPermissions
from .registry import (
    CompiledSteps,
    EngineRegistry,
    audit_secret_containment,
    get_default_registry,
    get_engine,
    list_available_engines,
)
from .secrets import filter_env, resolve_secret
from .shell import shell_escape_arg, shell_join_args
from .tools import describe_tool_permissions, resolve_tool_permissions

__all__ = [
    "AgentCommand",
    "AgentEngine",
    "ClaudeEngine",
    "CodexEngine",
    "CompiledSteps",
    "CopilotEngine",
    "CopilotSDKEngine",
    "EngineCapabilities",
    "EngineRegistry",
    "ErrorPattern",
    "Step",
    "ToolPermissions",
    "audit_secret_containment",
    "describe_tool_permissions",
    "filter_env",
    "get_default_registry",
    "get_engine",
    "list_available_engines",
    "resolve_secret",
    "resolve_tool_permissions",
    "shell_escape_arg",
    "shell_join_args",
]
