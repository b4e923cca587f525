"""
tools.py - Tool permission resolution.

Maps the engine-independent `tools` declarations of a workflow onto sorted
capability tokens:

    bash: [echo, ls]          -> shell(echo), shell(ls)
    bash: [":*"]              -> unrestricted (all tools)
    edit:                     -> write
    github: {allowed: [a]}    -> github(a)
    web-fetch:                -> web_fetch
    my-server: {command: x}   -> my-server (+ my-server(t) per allowed t)

Each engine then renders the tokens in its own flag grammar.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Set

from awflow.workflow.types import TOOL_SETTING_KEYS, is_mcp_tool

from .models import ToolPermissions

logger = logging.getLogger(__name__)

SHELL_TOOL_KEYS = ("bash", "shell")
SHELL_WILDCARDS = ("*", ":*")

# Built-in tools handled explicitly, never treated as tool-provider servers
_BUILTIN_TOOLS = frozenset({"bash", "shell", "edit", "web-fetch", "web-search", "playwright", "github"})


def _string_entries(value: Any, path: str, log: logging.Logger) -> List[str]:
    """Keep the string entries of a list, warning about anything else."""
    if not isinstance(value, list):
        log.warning("Ignoring %s: expected a list, got %s", path, type(value).__name__)
        return []
    entries: List[str] = []
    for item in value:
        if isinstance(item, str):
            entries.append(item)
        else:
            log.warning("Ignoring non-string entry in %s: %r", path, item)
    return entries


def _shell_tokens(key: str, value: Any, log: logging.Logger) -> Optional[List[str]]:
    """Tokens for a shell declaration; None means unrestricted."""
    if value is False:
        return []
    if not isinstance(value, list):
        if value is not None and value is not True:
            log.warning("Ignoring malformed tools.%s declaration; granting plain shell", key)
        return ["shell"]
    commands = _string_entries(value, f"tools.{key}", log)
    if any(c in SHELL_WILDCARDS for c in commands):
        return None
    return [f"shell({c})" for c in commands]


def _github_tokens(value: Any, log: logging.Logger) -> List[str]:
    if not isinstance(value, dict) or "allowed" not in value:
        return ["github"]
    allowed = _string_entries(value["allowed"], "tools.github.allowed", log)
    if "*" in allowed:
        # Wildcard applies to the github category only
        return ["github"]
    return [f"github({name})" for name in allowed]


def _provider_tokens(name: str, value: Mapping[str, Any], log: logging.Logger) -> List[str]:
    tokens = [name]
    if "allowed" in value:
        allowed = _string_entries(value["allowed"], f"tools.{name}.allowed", log)
        tokens.extend(f"{name}({tool})" for tool in allowed)
    return tokens


def resolve_tool_permissions(
    tools: Mapping[str, Any],
    safe_outputs_enabled: bool = False,
    safe_inputs_enabled: bool = False,
    log: Optional[logging.Logger] = None,
) -> ToolPermissions:
    """Resolve tool declarations into capability tokens.

    Args:
        tools: The workflow's tool-declaration map.
        safe_outputs_enabled: Adds the `safeoutputs` token.
        safe_inputs_enabled: Adds the `safeinputs` token.
        log: Logger for recovered malformed declarations.

    Returns:
        ToolPermissions.all_tools() if a shell wildcard is declared, otherwise
        the sorted, deduplicated token set (possibly empty).
    """
    log = log or logger
    tokens: Set[str] = set()

    for key in SHELL_TOOL_KEYS:
        if key in tools:
            shell = _shell_tokens(key, tools[key], log)
            if shell is None:
                return ToolPermissions.all_tools()
            tokens.update(shell)

    if "edit" in tools:
        tokens.add("write")
    if safe_outputs_enabled:
        tokens.add("safeoutputs")
    if safe_inputs_enabled:
        tokens.add("safeinputs")
    if "web-fetch" in tools:
        tokens.add("web_fetch")
    if "github" in tools:
        tokens.update(_github_tokens(tools["github"], log))

    for name, value in tools.items():
        if name in _BUILTIN_TOOLS or name in TOOL_SETTING_KEYS:
            continue
        if is_mcp_tool(value):
            tokens.update(_provider_tokens(name, value, log))

    return ToolPermissions.only(tokens)


def describe_tool_permissions(permissions: ToolPermissions, label: str = "Available tools") -> List[str]:
    """Comment lines summarizing the resolved tools for a step body."""
    if permissions.unrestricted:
        return [f"# {label}: all tools enabled (wildcard)"]
    if not permissions.tokens:
        return []
    lines = [f"# {label} (sorted):"]
    lines.extend(f"# - {token}" for token in permissions.tokens)
    return lines
