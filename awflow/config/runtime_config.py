"""Runtime configuration registry for the workflow compiler.

Provides the compiled-in defaults the engines fall back to when a workflow
does not override them: pinned tool versions, install paths, the firewall
image set and default timeouts. Environment variables take precedence over
the YAML config.

Usage:
    from awflow.config.runtime_config import get_engine_version, get_path

    version = get_engine_version("claude")  # "2.0.76" unless overridden
    prompt = get_path("prompt_file")

Environment overrides:
    AWFLOW_<ENGINE>_VERSION   - e.g. AWFLOW_COPILOT_SDK_VERSION=0.0.380
    AWFLOW_FIREWALL_VERSION   - e.g. AWFLOW_FIREWALL_VERSION=v0.9.0
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or {}
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    docs = "https://githubnext.github.io/gh-aw/reference/engines/"
    return {
        "version": "1.0",
        "engines": {
            "copilot": {
                "version": "0.0.374",
                "cli_path": "/usr/local/bin/copilot",
                "docs_url": docs + "#github-copilot-default",
            },
            "copilot-sdk": {
                "version": "0.0.374",
                "cli_path": "/usr/local/bin/copilot",
                "runner_path": "/usr/local/bin/copilot-runner",
                "runner_staged_path": "/opt/gh-aw/bin/copilot-runner",
                "docs_url": docs + "#github-copilot-default",
            },
            "claude": {
                "version": "2.0.76",
                "cli_path": "/usr/local/bin/claude",
                "node_version": "24",
                "docs_url": docs + "#anthropic-claude-code",
            },
            "codex": {
                "version": "0.77.0",
                "cli_path": "/usr/local/bin/codex",
                "node_version": "24",
                "docs_url": docs + "#openai-codex",
            },
        },
        "firewall": {
            "version": "v0.8.2",
            "command": "sudo -E awf",
            "log_level": "info",
            "logs_dir": "/tmp/gh-aw/sandbox/firewall/logs",
            "images": [
                "ghcr.io/github/gh-aw-firewall/squid",
                "ghcr.io/github/gh-aw-firewall/agent",
            ],
        },
        "paths": {
            "prompt_file": "/tmp/gh-aw/aw-prompts/prompt.txt",
            "logs_folder": "/tmp/gh-aw/sandbox/agent/logs/",
            "mcp_config": "/home/runner/.copilot/mcp-config.json",
        },
        "defaults": {
            "timeout_minutes": 20,
            "runner_timeout_seconds": 1800,
        },
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _env_key(engine: str, setting: str) -> str:
    return f"AWFLOW_{engine.upper().replace('-', '_')}_{setting.upper()}"


def _section(name: str) -> Dict[str, Any]:
    config = _load_config()
    section = config.get(name)
    if section is None:
        section = _default_config().get(name, {})
    return section


def get_engine_setting(engine: str, key: str, default: Any = None) -> Any:
    """Get a per-engine setting from runtime.yaml.

    Args:
        engine: Engine identifier (e.g. "copilot-sdk").
        key: Setting name (e.g. "cli_path").
        default: Value returned when neither the file nor the built-in
            defaults define the setting.
    """
    engines = _section("engines")
    value = engines.get(engine, {}).get(key)
    if value is None:
        value = _default_config()["engines"].get(engine, {}).get(key, default)
    return value


def get_engine_version(engine: str) -> Optional[str]:
    """Get the default tool version for an engine.

    Resolution order:
    1. AWFLOW_<ENGINE>_VERSION environment variable
    2. engines.<engine>.version in runtime.yaml
    3. Built-in default
    """
    env_value = os.environ.get(_env_key(engine, "version"))
    if env_value:
        logger.debug("Using %s version from environment: %s", engine, env_value)
        return env_value
    value = get_engine_setting(engine, "version")
    return str(value) if value is not None else None


def get_firewall_setting(key: str, default: Any = None) -> Any:
    """Get a firewall (AWF) setting from runtime.yaml."""
    value = _section("firewall").get(key)
    if value is None:
        value = _default_config()["firewall"].get(key, default)
    return value


def get_firewall_version() -> str:
    """Get the default firewall version (AWFLOW_FIREWALL_VERSION wins)."""
    env_value = os.environ.get("AWFLOW_FIREWALL_VERSION")
    if env_value:
        return env_value
    return str(get_firewall_setting("version"))


def get_firewall_images() -> List[str]:
    """Get the container images the firewall pulls before running."""
    return list(get_firewall_setting("images", []))


def get_path(name: str) -> str:
    """Get a fixed filesystem path (prompt_file, logs_folder, mcp_config)."""
    value = _section("paths").get(name)
    if value is None:
        value = _default_config()["paths"][name]
    return str(value)


def get_default_timeout_minutes() -> int:
    """Get the default execution step timeout in minutes."""
    return int(_section("defaults").get("timeout_minutes", 20))


def get_runner_timeout_seconds() -> int:
    """Get the default runner session timeout in seconds."""
    return int(_section("defaults").get("runner_timeout_seconds", 1800))
