"""
copilot.py - GitHub Copilot CLI engine.

Runs `copilot --prompt ...` directly. Tool permissions map onto repeated
`--allow-tool <token>` flags, or `--allow-all-tools` when unrestricted.
"""

from __future__ import annotations

from typing import Dict, List

from awflow.config.runtime_config import get_engine_setting, get_path
from awflow.workflow.types import WorkflowModel

from .base import AgentEngine
from .models import AgentCommand, EngineCapabilities, Step, ToolPermissions
from .secrets import secret_reference
from .shell import shell_escape_arg, shell_join_args

COPILOT_DEFAULT_DOMAINS = (
    "api.business.githubcopilot.com",
    "api.enterprise.githubcopilot.com",
    "api.github.com",
    "api.githubcopilot.com",
    "api.individual.githubcopilot.com",
    "github.com",
    "host.docker.internal",
    "registry.npmjs.org",
)

COPILOT_TOKEN_SECRET = "COPILOT_GITHUB_TOKEN"


def copilot_install_steps(version: str) -> List[Step]:
    """Install the Copilot CLI at a pinned version."""
    return [
        Step(
            name="Install GitHub Copilot CLI",
            run="\n".join(
                [
                    f"export VERSION={shell_escape_arg(version)}",
                    "curl -fsSL https://raw.githubusercontent.com/github/copilot-cli/main/install.sh | sudo -E bash",
                    "copilot --version",
                ]
            ),
        )
    ]


def copilot_tool_args(permissions: ToolPermissions) -> List[str]:
    if permissions.unrestricted:
        return ["--allow-all-tools"]
    args: List[str] = []
    for token in permissions.tokens:
        args.extend(["--allow-tool", token])
    return args


class CopilotEngine(AgentEngine):
    """Engine for the GitHub Copilot CLI."""

    description = "Uses the GitHub Copilot CLI with MCP server support"
    capabilities = EngineCapabilities(
        tools_allowlist=True,
        http_transport=True,
        max_turns=False,
        web_fetch=True,
        web_search=False,
        firewall=True,
        plugins=True,
        llm_gateway=False,
    )
    log_parser_id = "parse_copilot_log"
    execution_step_name = "Execute GitHub Copilot CLI"
    default_domains = COPILOT_DEFAULT_DOMAINS
    model_var_suffix = "COPILOT"

    @property
    def mcp_config_path(self) -> str:
        return get_path("mcp_config")

    @property
    def engine_id(self) -> str:
        return "copilot"

    @property
    def display_name(self) -> str:
        return "GitHub Copilot CLI"

    def copilot_token(self, workflow: WorkflowModel) -> str:
        return workflow.github_token or secret_reference(COPILOT_TOKEN_SECRET)

    def primary_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {COPILOT_TOKEN_SECRET: self.copilot_token(workflow)}

    def cli_install_steps(self, version: str) -> List[Step]:
        return copilot_install_steps(version)

    def build_agent_command(
        self,
        workflow: WorkflowModel,
        permissions: ToolPermissions,
        sandboxed: bool,
    ) -> AgentCommand:
        if workflow.engine.command:
            binary = workflow.engine.command
        elif sandboxed:
            binary = str(get_engine_setting(self.engine_id, "cli_path"))
        else:
            binary = "copilot"

        args = [
            "--add-dir", "/tmp/gh-aw/",
            "--log-level", "all",
            "--log-dir", self.logs_folder,
            "--disable-builtin-mcps",
        ]
        if sandboxed:
            args.extend(["--add-dir", '"${GITHUB_WORKSPACE}"'])
        if workflow.engine.model:
            args.extend(["--model", workflow.engine.model])
        args.extend(copilot_tool_args(permissions))
        args.extend(workflow.engine.args)

        parts = [binary, shell_join_args(args)]
        if not workflow.engine.model:
            var = self.model_env_var(workflow)
            parts.append(f'${{{var}:+ --model "${var}"}}')
        parts.extend(["--prompt", self.prompt_argument()])
        return AgentCommand(command=" ".join(parts))

    def engine_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {
            COPILOT_TOKEN_SECRET: self.copilot_token(workflow),
            "XDG_CONFIG_HOME": "/home/runner",
        }
