"""
base.py - Abstract base class for agent engines.

An engine turns a WorkflowModel into the CI steps that install and run one
agent backend. The shared pipeline lives here and in the helpers it wires up:

- InstallationOrchestrator: secret validation, CLI install, companion
  binaries, plugins, sandbox installation
- ExecutionStepCompiler: the single agent execution step
- SandboxCommandBuilder: the firewall wrapper

Subclasses supply the variant-specific parts through a small set of hooks:
primary secrets, CLI install steps, the agent command and engine env.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from awflow.config.runtime_config import get_engine_setting, get_engine_version, get_path
from awflow.workflow.types import WorkflowModel

from .execution import ExecutionStepCompiler
from .installation import InstallationOrchestrator
from .models import AgentCommand, EngineCapabilities, ErrorPattern, Step, ToolPermissions
from .sandbox import SandboxCommandBuilder
from .secrets import (
    collect_header_secrets,
    collect_safe_inputs_secrets,
    resolve_secret,
    secret_reference,
)
from .tools import resolve_tool_permissions

AGENT_LOG_FILE = "/tmp/gh-aw/agent-stdio.log"

COMMON_ERROR_PATTERNS: Tuple[ErrorPattern, ...] = (
    ErrorPattern(r"(?i)error:?\s+(.+)", "Generic error message"),
    ErrorPattern(r"(?i)fatal:?\s+(.+)", "Fatal error"),
    ErrorPattern(r"(?i)panic:?\s+(.+)", "Panic"),
    ErrorPattern(r"(?i)failed to\s+(.+)", "Operation failure"),
)


class AgentEngine(ABC):
    """Abstract base class for agent engines.

    Engines are responsible for:
    - Declaring the secrets their steps consume
    - Producing ordered installation steps
    - Producing the execution step (command, env, sandbox wrapper)

    Engines do NOT own:
    - Parsing workflow definitions (that's awflow.workflow)
    - Rendering steps into a CI document (that's the caller's job)
    - Running the agent (that's the CI runner, or awflow.runner)
    """

    description: str = ""
    experimental: bool = False
    capabilities: EngineCapabilities = EngineCapabilities()
    log_parser_id: str = ""
    error_patterns: Tuple[ErrorPattern, ...] = COMMON_ERROR_PATTERNS
    execution_step_name: str = "Execute agent"
    default_domains: Tuple[str, ...] = ()
    api_proxy_port: Optional[int] = None
    mcp_config_path: str = "/tmp/gh-aw/mcp-config/mcp-servers.json"
    model_var_suffix: str = ""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(f"{__name__}.{self.engine_id}")
        self.sandbox = SandboxCommandBuilder(
            default_domains=self.default_domains,
            supports_firewall=self.capabilities.firewall,
            api_proxy_port=self.api_proxy_port if self.capabilities.llm_gateway else None,
            logger=self.logger,
        )
        self.installer = InstallationOrchestrator(self, logger=self.logger)
        self.compiler = ExecutionStepCompiler(self, logger=self.logger)

    @property
    @abstractmethod
    def engine_id(self) -> str:
        """Unique identifier for this engine (e.g., 'copilot', 'claude')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable engine name used in step names and diagnostics."""
        ...

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def logs_folder(self) -> str:
        return get_path("logs_folder")

    @property
    def docs_url(self) -> str:
        return str(get_engine_setting(self.engine_id, "docs_url", ""))

    def resolve_version(self, workflow: WorkflowModel) -> str:
        """Workflow version override, else the configured default."""
        if workflow.engine.version:
            return workflow.engine.version
        return get_engine_version(self.engine_id) or "latest"

    def model_env_var(self, workflow: WorkflowModel) -> str:
        """Variable holding the run-time model when none is configured.

        Detection jobs (no safe outputs) read a separate variable.
        """
        kind = "DETECTION" if workflow.safe_outputs is None else "AGENT"
        return f"GH_AW_MODEL_{kind}_{self.model_var_suffix}"

    def log_file_for_parsing(self) -> str:
        return AGENT_LOG_FILE

    def declared_output_files(self) -> List[str]:
        return [self.logs_folder]

    def metadata(self) -> Dict[str, Any]:
        """Engine metadata for listings (see EngineRegistry.list_engines)."""
        return {
            "id": self.engine_id,
            "label": self.display_name,
            "description": self.description,
            "experimental": self.experimental,
            "capabilities": self.capabilities.to_dict(),
            "log_parser": self.log_parser_id,
        }

    # =========================================================================
    # Secrets
    # =========================================================================

    @abstractmethod
    def primary_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        """The engine's own credentials, secret name -> expression."""
        ...

    def github_mcp_token(self, workflow: WorkflowModel) -> str:
        """Token expression for the GitHub tool-provider server."""
        github = workflow.tools.get("github")
        custom = github.get("github-token") if isinstance(github, dict) else None
        return resolve_secret("github-mcp", custom or workflow.github_token)

    def required_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        """Every secret the engine's steps consume, in declaration order."""
        secrets = dict(self.primary_secrets(workflow))
        if workflow.has_mcp_servers():
            secrets["MCP_GATEWAY_API_KEY"] = secret_reference("MCP_GATEWAY_API_KEY")
        if workflow.has_tool("github"):
            secrets["GITHUB_MCP_SERVER_TOKEN"] = self.github_mcp_token(workflow)
        if workflow.plugins and self.capabilities.plugins:
            secrets.setdefault("GITHUB_TOKEN", resolve_secret("plugins", workflow.plugins_github_token))
        for name, expression in collect_header_secrets(workflow.tools).items():
            secrets.setdefault(name, expression)
        for name, expression in collect_safe_inputs_secrets(workflow.safe_inputs).items():
            secrets.setdefault(name, expression)
        return secrets

    def required_secret_names(self, workflow: WorkflowModel) -> List[str]:
        return list(self.required_secrets(workflow))

    # =========================================================================
    # Steps
    # =========================================================================

    def installation_steps(self, workflow: WorkflowModel) -> List[Step]:
        return self.installer.build(workflow)

    def execution_steps(self, workflow: WorkflowModel, log_file: str) -> List[Step]:
        return self.compiler.build(workflow, log_file)

    def resolve_tools(self, workflow: WorkflowModel) -> ToolPermissions:
        return resolve_tool_permissions(
            workflow.tools,
            safe_outputs_enabled=workflow.safe_outputs_enabled,
            safe_inputs_enabled=workflow.safe_inputs_enabled,
            log=self.logger,
        )

    @abstractmethod
    def cli_install_steps(self, version: str) -> List[Step]:
        """Steps installing the engine CLI at the given version."""
        ...

    def companion_install_steps(self, workflow: WorkflowModel) -> List[Step]:
        """Steps installing helper binaries the agent command needs."""
        return []

    def plugin_install_command(self, plugin_spec: str) -> str:
        return f"{self.engine_id} plugin install {plugin_spec}"

    @abstractmethod
    def build_agent_command(
        self,
        workflow: WorkflowModel,
        permissions: ToolPermissions,
        sandboxed: bool,
    ) -> AgentCommand:
        """The agent invocation (without the sandbox wrapper or log sink)."""
        ...

    def prompt_argument(self) -> str:
        """Shell argument that inlines the prompt file at run time."""
        return f'"$(cat {get_path("prompt_file")})"'

    def base_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        """Platform variables every execution step receives."""
        return {
            "GITHUB_STEP_SUMMARY": "${{ env.GITHUB_STEP_SUMMARY }}",
            "GITHUB_HEAD_REF": "${{ github.head_ref }}",
            "GITHUB_REF_NAME": "${{ github.ref_name }}",
            "GITHUB_WORKSPACE": "${{ github.workspace }}",
            "GH_AW_PROMPT": get_path("prompt_file"),
        }

    def engine_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        """Engine-specific variables (credentials, telemetry switches)."""
        return {}
