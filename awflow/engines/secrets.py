"""
secrets.py - Secret cascade resolution and environment filtering.

Secrets are only ever referenced as CI expressions (`${{ secrets.NAME }}`);
the compiler never sees secret values. filter_env is the containment gate:
an env entry that references a secret survives only if its key is one of
the engine's declared secret names.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from awflow.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Role -> ordered secret names: dedicated, general-purpose fallback, platform default
SECRET_CASCADES: Dict[str, Tuple[str, ...]] = {
    "github-mcp": ("GH_AW_GITHUB_MCP_SERVER_TOKEN", "GH_AW_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "plugins": ("GH_AW_PLUGINS_TOKEN", "GH_AW_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "github": ("GH_AW_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "codex": ("CODEX_API_KEY", "OPENAI_API_KEY"),
}

_SECRET_REF = re.compile(r"secrets\.([A-Za-z_][A-Za-z0-9_]*)")


def secret_reference(name: str) -> str:
    """Render a single-secret CI expression."""
    return f"${{{{ secrets.{name} }}}}"


def resolve_secret(role: str, custom_value: Optional[str] = None) -> str:
    """Resolve the token expression for a role.

    A non-empty custom value is returned verbatim. Otherwise the expression
    tries each name of the role's cascade in order.

    Raises:
        ConfigurationError: If the role has no cascade.
    """
    if custom_value:
        return custom_value
    names = SECRET_CASCADES.get(role)
    if names is None:
        raise ConfigurationError("secret_role", f"unknown secret role '{role}'")
    chain = " || ".join(f"secrets.{name}" for name in names)
    return f"${{{{ {chain} }}}}"


def referenced_secrets(value: str) -> List[str]:
    """Secret names referenced by an expression, in order of appearance."""
    seen: List[str] = []
    for name in _SECRET_REF.findall(value or ""):
        if name not in seen:
            seen.append(name)
    return seen


def references_secret(value: str) -> bool:
    return bool(_SECRET_REF.search(value or ""))


def _collect_from_values(values: Iterable[Any], into: Dict[str, str]) -> None:
    for value in values:
        if not isinstance(value, str):
            continue
        for name in referenced_secrets(value):
            into.setdefault(name, secret_reference(name))


def collect_header_secrets(tools: Mapping[str, Any]) -> Dict[str, str]:
    """Secrets referenced in HTTP tool-provider headers, name -> expression."""
    found: Dict[str, str] = {}
    for name in sorted(tools):
        value = tools[name]
        if isinstance(value, dict) and isinstance(value.get("headers"), dict):
            _collect_from_values(value["headers"].values(), found)
    return found


def collect_safe_inputs_secrets(safe_inputs: Any) -> Dict[str, str]:
    """Secrets referenced by safe-input tool env entries, name -> expression."""
    found: Dict[str, str] = {}
    if safe_inputs is None or not safe_inputs.enabled:
        return found
    for name in sorted(safe_inputs.tools):
        tool = safe_inputs.tools[name]
        if isinstance(tool, dict) and isinstance(tool.get("env"), dict):
            _collect_from_values(tool["env"].values(), found)
    return found


def filter_env(env: Mapping[str, str], allowed_names: Iterable[str]) -> Dict[str, str]:
    """Drop secret-referencing entries whose key is not a declared secret.

    Non-secret entries pass through unchanged. Dropped keys are debug-logged;
    values are never logged.
    """
    allowed = set(allowed_names)
    filtered: Dict[str, str] = {}
    for key, value in env.items():
        if references_secret(value) and key not in allowed:
            logger.debug("Dropping undeclared secret env entry: %s", key)
            continue
        filtered[key] = value
    return filtered
