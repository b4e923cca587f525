"""
execution.py - Execution step assembly.

Builds the agent execution step shared by every engine:

    # <tool summary>
    set -o pipefail
    mkdir -p <logs folder>
    <engine setup lines>
    <sandbox-wrapped agent command> 2>&1 | tee <log file>

The step env is assembled from the engine's base set plus conditional
variables and overrides, then passed through filter_env so only declared
secrets survive.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from awflow.config.runtime_config import get_default_timeout_minutes
from awflow.errors import ConfigurationError
from awflow.workflow.types import WorkflowModel

from .models import Step
from .secrets import (
    collect_header_secrets,
    collect_safe_inputs_secrets,
    filter_env,
    secret_reference,
)
from .shell import shell_escape_arg
from .tools import describe_tool_permissions

if TYPE_CHECKING:
    from .base import AgentEngine

EXECUTION_STEP_ID = "agentic_execution"


class ExecutionStepCompiler:
    """Compiles the execution step(s) for one engine."""

    def __init__(self, engine: "AgentEngine", logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def build(self, workflow: WorkflowModel, log_file: str) -> List[Step]:
        """Custom pre-steps followed by the agent execution step.

        Raises:
            ConfigurationError: If log_file is empty.
        """
        if not log_file:
            raise ConfigurationError("log_file", "a log file path is required")

        engine = self.engine
        steps = [Step.from_dict(data) for data in workflow.engine.steps]

        permissions = engine.resolve_tools(workflow)
        sandboxed = engine.sandbox.is_enabled(workflow)
        agent = engine.build_agent_command(workflow, permissions, sandboxed)

        lines = describe_tool_permissions(permissions, label=f"{engine.display_name} tools")
        lines.append("set -o pipefail")
        lines.append(f"mkdir -p {shell_escape_arg(engine.logs_folder)}")
        lines.extend(agent.setup_lines)
        lines.append(engine.sandbox.wrap(workflow, agent.command, log_file))

        timeout = workflow.timeout_minutes or get_default_timeout_minutes()
        env = filter_env(self.build_env(workflow), engine.required_secret_names(workflow))

        steps.append(
            Step(
                name=engine.execution_step_name,
                id=EXECUTION_STEP_ID,
                timeout_minutes=timeout,
                env=env,
                run="\n".join(lines),
            )
        )
        self.logger.debug(
            "Compiled execution step for %s (sandboxed=%s, %d env vars)",
            engine.engine_id,
            sandboxed,
            len(env),
        )
        return steps

    def build_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        """Unfiltered step env: base, conditional variables, then overrides."""
        engine = self.engine
        env = engine.base_env(workflow)
        env.update(engine.engine_env(workflow))

        if workflow.has_mcp_servers():
            env["GH_AW_MCP_CONFIG"] = engine.mcp_config_path
            env["MCP_GATEWAY_API_KEY"] = secret_reference("MCP_GATEWAY_API_KEY")
        if workflow.has_tool("github"):
            env["GITHUB_MCP_SERVER_TOKEN"] = engine.github_mcp_token(workflow)

        if workflow.safe_outputs is not None:
            env["GH_AW_SAFE_OUTPUTS"] = "${{ env.GH_AW_SAFE_OUTPUTS }}"
            env["GH_AW_SAFE_OUTPUTS_CONFIG_PATH"] = "/opt/gh-aw/safeoutputs/config.json"
        if workflow.safe_inputs_enabled:
            env["GH_AW_SAFE_INPUTS_PORT"] = "${{ steps.safe-inputs-start.outputs.port }}"
            env["GH_AW_SAFE_INPUTS_API_KEY"] = "${{ steps.safe-inputs-start.outputs.api_key }}"

        if workflow.tools_startup_timeout and workflow.tools_startup_timeout > 0:
            env["GH_AW_STARTUP_TIMEOUT"] = str(workflow.tools_startup_timeout)
        if workflow.tools_timeout and workflow.tools_timeout > 0:
            env["GH_AW_TOOL_TIMEOUT"] = str(workflow.tools_timeout)
        if workflow.engine.max_turns:
            env["GH_AW_MAX_TURNS"] = workflow.engine.max_turns

        if not workflow.engine.model:
            var = engine.model_env_var(workflow)
            env[var] = f"${{{{ vars.{var} || '' }}}}"

        env.update(workflow.engine.env)
        if workflow.sandbox is not None:
            env.update(workflow.sandbox.env)

        for name, expression in collect_header_secrets(workflow.tools).items():
            env.setdefault(name, expression)
        for name, expression in collect_safe_inputs_secrets(workflow.safe_inputs).items():
            env.setdefault(name, expression)
        return env
