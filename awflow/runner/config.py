"""
config.py - Runner configuration document.

The copilot-sdk engine writes this document at compile time; the runner
process reads it at run time. Both sides use RunnerConfig, so the wire format
has a single definition.

available_tools semantics:
    absent (None) -> every tool is available
    []            -> no tools are available
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from awflow.config.runtime_config import get_runner_timeout_seconds
from awflow.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CLI_PATH = "copilot"
DEFAULT_LOG_LEVEL = "info"

_ENV_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def expand_env(text: str, environ: Optional[Dict[str, str]] = None) -> str:
    """Expand $VAR and ${VAR} references; unset variables become empty."""
    env = os.environ if environ is None else environ
    return _ENV_VAR.sub(lambda m: env.get(m.group(1) or m.group(2), ""), text)


class RunnerConfig(BaseModel):
    """Configuration for one agent session."""

    model_config = ConfigDict(extra="ignore")

    cli_path: str = Field(DEFAULT_CLI_PATH, description="Path to the agent CLI")
    github_token: Optional[str] = Field(None, description="Token for the agent CLI")
    model: Optional[str] = None
    working_directory: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_dir: Optional[str] = None
    prompt_file: str = Field(..., description="File holding the agent prompt")
    available_tools: Optional[List[str]] = None
    excluded_tools: Optional[List[str]] = None
    mcp_config_path: Optional[str] = None
    streaming: bool = False
    timeout: Optional[int] = Field(None, ge=0, description="Session timeout in seconds")
    metrics_file: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("prompt_file")
    @classmethod
    def prompt_file_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("prompt_file is required")
        return value

    @field_validator("cli_path", "log_level", mode="before")
    @classmethod
    def default_when_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value in (None, ""):
            return DEFAULT_CLI_PATH if info.field_name == "cli_path" else DEFAULT_LOG_LEVEL
        return value

    @property
    def timeout_seconds(self) -> int:
        """Effective session timeout (0 or absent means the default)."""
        return self.timeout or get_runner_timeout_seconds()

    def to_json(self) -> str:
        """Serialize for the compiled step; absent fields are omitted."""
        return self.model_dump_json(exclude_none=True, indent=2)


def parse_config(text: str, environ: Optional[Dict[str, str]] = None) -> RunnerConfig:
    """Parse a runner configuration document.

    The document is env-expanded before parsing. A missing github_token falls
    back to COPILOT_GITHUB_TOKEN.

    Raises:
        ConfigurationError: If the document is not valid JSON or fails
            validation.
    """
    env = os.environ if environ is None else environ
    try:
        data = json.loads(expand_env(text, env))
    except json.JSONDecodeError as e:
        raise ConfigurationError("config", f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("config", "expected a JSON object")

    if not data.get("github_token"):
        data["github_token"] = env.get("COPILOT_GITHUB_TOKEN") or None

    try:
        return RunnerConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "config"
        raise ConfigurationError(field, first.get("msg", str(e))) from e


def load_config(path: Union[str, Path], environ: Optional[Dict[str, str]] = None) -> RunnerConfig:
    """Load a runner configuration file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError("config", f"config file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError("config", f"cannot read config file {path}: {e}") from e
    logger.debug("Loaded runner config from %s", path)
    return parse_config(text, environ)


def load_mcp_servers(
    path: Optional[str], environ: Optional[Dict[str, str]] = None
) -> Optional[Dict[str, Any]]:
    """Load tool-provider servers from the `mcpServers` key of a config file.

    Returns:
        Server name -> config, or None when no path is set or the file does
        not exist.

    Raises:
        ConfigurationError: If the file exists but cannot be read or is not
            valid JSON.
    """
    if not path:
        return None
    config_path = Path(path)
    if not config_path.exists():
        logger.debug("MCP config %s not found; starting without servers", config_path)
        return None
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError("mcp_config_path", f"cannot read {config_path}: {e}") from e
    try:
        data = json.loads(expand_env(text, environ))
    except json.JSONDecodeError as e:
        raise ConfigurationError("mcp_config_path", f"invalid JSON in {config_path}: {e}") from e
    servers = data.get("mcpServers") if isinstance(data, dict) else None
    return servers if isinstance(servers, dict) else None
