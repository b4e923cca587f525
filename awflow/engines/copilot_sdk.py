"""
copilot_sdk.py - GitHub Copilot SDK engine (experimental).

Instead of passing flags to the Copilot CLI, this engine writes a JSON runner
configuration at run time and invokes `copilot-runner --config <file>`, which
drives the CLI through a programmatic session (see awflow.runner).

When no model is configured the compiled config has no `model` field and a
jq fragment fills it from GH_AW_MODEL_AGENT_COPILOT (or the detection
variable) just before the runner starts.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from awflow.config.runtime_config import get_engine_setting, get_path
from awflow.runner.config import RunnerConfig
from awflow.workflow.types import WorkflowModel

from .base import COMMON_ERROR_PATTERNS, AgentEngine
from .copilot import COPILOT_DEFAULT_DOMAINS, COPILOT_TOKEN_SECRET, copilot_install_steps
from .models import AgentCommand, EngineCapabilities, ErrorPattern, Step, ToolPermissions
from .secrets import secret_reference
from .shell import shell_escape_arg

RUNNER_CONFIG_PATH = "/tmp/gh-aw/copilot-runner-config.json"
RUNNER_CONFIG_DELIMITER = "RUNNER_CONFIG_EOF"


class CopilotSDKEngine(AgentEngine):
    """Engine for the Copilot SDK runner."""

    description = "Uses the GitHub Copilot SDK through the copilot-runner process"
    experimental = True
    capabilities = EngineCapabilities(
        tools_allowlist=True,
        http_transport=True,
        max_turns=False,
        web_fetch=True,
        web_search=False,
        firewall=True,
        plugins=False,
        llm_gateway=False,
    )
    log_parser_id = "parse_copilot_log"
    error_patterns: Tuple[ErrorPattern, ...] = COMMON_ERROR_PATTERNS + (
        ErrorPattern(r"(?i)SDK error:?\s+(.+)", "Copilot SDK error"),
        ErrorPattern(r"(?i)session error:?\s+(.+)", "Copilot session error"),
    )
    execution_step_name = "Execute Copilot SDK Runner"
    default_domains = COPILOT_DEFAULT_DOMAINS
    model_var_suffix = "COPILOT"

    @property
    def mcp_config_path(self) -> str:
        return get_path("mcp_config")

    @property
    def engine_id(self) -> str:
        return "copilot-sdk"

    @property
    def display_name(self) -> str:
        return "GitHub Copilot SDK"

    @property
    def metrics_file(self) -> str:
        return self.logs_folder.rstrip("/") + "/sdk-metrics.json"

    def copilot_token(self, workflow: WorkflowModel) -> str:
        return workflow.github_token or secret_reference(COPILOT_TOKEN_SECRET)

    def primary_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {COPILOT_TOKEN_SECRET: self.copilot_token(workflow)}

    def log_file_for_parsing(self) -> str:
        return self.logs_folder

    def declared_output_files(self) -> List[str]:
        return [self.logs_folder, self.metrics_file]

    # =========================================================================
    # Installation
    # =========================================================================

    def cli_install_steps(self, version: str) -> List[Step]:
        return copilot_install_steps(version)

    def companion_install_steps(self, workflow: WorkflowModel) -> List[Step]:
        staged = shell_escape_arg(str(get_engine_setting(self.engine_id, "runner_staged_path")))
        target = shell_escape_arg(str(get_engine_setting(self.engine_id, "runner_path")))
        run = "\n".join(
            [
                f"if [ -f {staged} ]; then",
                f"  sudo cp {staged} {target}",
                f"  sudo chmod +x {target}",
                f'  echo "copilot-runner installed to {target}"',
                "else",
                f'  echo "::error::copilot-runner binary not found at {staged}"',
                "  exit 1",
                "fi",
            ]
        )
        return [Step(name="Install copilot-runner", run=run)]

    # =========================================================================
    # Execution
    # =========================================================================

    def build_runner_config(self, workflow: WorkflowModel, permissions: ToolPermissions) -> RunnerConfig:
        """The runner document embedded in the execution step."""
        timeout_minutes = workflow.timeout_minutes
        return RunnerConfig(
            cli_path=str(get_engine_setting(self.engine_id, "cli_path")),
            model=workflow.engine.model,
            working_directory="${GITHUB_WORKSPACE}",
            log_level="info",
            log_dir=self.logs_folder,
            prompt_file=get_path("prompt_file"),
            available_tools=permissions.as_list(),
            mcp_config_path=self.mcp_config_path if workflow.has_mcp_servers() else None,
            streaming=True,
            timeout=timeout_minutes * 60 if timeout_minutes else None,
            metrics_file=self.metrics_file,
        )

    def runner_command(self, workflow: WorkflowModel, sandboxed: bool) -> str:
        if workflow.engine.command:
            return workflow.engine.command
        if sandboxed:
            return str(get_engine_setting(self.engine_id, "runner_path"))
        return "copilot-runner"

    def model_injection_lines(self, workflow: WorkflowModel) -> List[str]:
        """Fill `.model` from the run-time variable when it is set."""
        var = self.model_env_var(workflow)
        tmp = f"{RUNNER_CONFIG_PATH}.tmp"
        return [
            f'if [ -n "${{{var}}}" ]; then',
            f'  jq --arg model "${{{var}}}" \'.model = $model\' {RUNNER_CONFIG_PATH} > {tmp} && mv {tmp} {RUNNER_CONFIG_PATH}',
            "fi",
        ]

    def build_agent_command(
        self,
        workflow: WorkflowModel,
        permissions: ToolPermissions,
        sandboxed: bool,
    ) -> AgentCommand:
        config = self.build_runner_config(workflow, permissions)
        setup = [
            f"cat > {RUNNER_CONFIG_PATH} << '{RUNNER_CONFIG_DELIMITER}'",
            config.to_json(),
            RUNNER_CONFIG_DELIMITER,
        ]
        if not workflow.engine.model:
            setup.extend(self.model_injection_lines(workflow))

        command = f"{self.runner_command(workflow, sandboxed)} --config {RUNNER_CONFIG_PATH}"
        return AgentCommand(command=command, setup_lines=tuple(setup))

    def engine_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {
            COPILOT_TOKEN_SECRET: self.copilot_token(workflow),
            "COPILOT_AGENT_RUNNER_TYPE": "SDK",
            "XDG_CONFIG_HOME": "/home/runner",
        }
