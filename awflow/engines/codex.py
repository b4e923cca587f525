"""
codex.py - OpenAI Codex CLI engine (experimental).

Codex has no per-tool allowlist. Its approval mode carries the permission
ceiling instead: unrestricted shell access runs with
--dangerously-bypass-approvals-and-sandbox, anything narrower with
--full-auto.
"""

from __future__ import annotations

from typing import Dict, List

from awflow.config.runtime_config import get_engine_setting
from awflow.workflow.types import WorkflowModel

from .base import AgentEngine
from .claude import node_setup_step
from .models import AgentCommand, EngineCapabilities, Step, ToolPermissions
from .secrets import resolve_secret
from .shell import shell_join_args

CODEX_DEFAULT_DOMAINS = (
    "api.openai.com",
    "openai.com",
    "registry.npmjs.org",
)

CODEX_HOME = "/tmp/gh-aw/mcp-config"


class CodexEngine(AgentEngine):
    """Engine for the OpenAI Codex CLI."""

    description = "Uses OpenAI Codex CLI with MCP server support"
    experimental = True
    capabilities = EngineCapabilities(
        tools_allowlist=False,
        http_transport=True,
        max_turns=False,
        web_fetch=False,
        web_search=True,
        firewall=True,
        plugins=False,
        llm_gateway=True,
    )
    log_parser_id = "parse_codex_log"
    execution_step_name = "Execute Codex CLI"
    default_domains = CODEX_DEFAULT_DOMAINS
    api_proxy_port = 10001
    mcp_config_path = f"{CODEX_HOME}/config.toml"
    model_var_suffix = "CODEX"

    @property
    def engine_id(self) -> str:
        return "codex"

    @property
    def display_name(self) -> str:
        return "Codex"

    def primary_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {"CODEX_API_KEY": resolve_secret("codex")}

    def cli_install_steps(self, version: str) -> List[Step]:
        node_version = str(get_engine_setting(self.engine_id, "node_version", "24"))
        return [
            node_setup_step(node_version),
            Step(name="Install Codex", run=f"npm install -g --silent @openai/codex@{version}"),
        ]

    def build_agent_command(
        self,
        workflow: WorkflowModel,
        permissions: ToolPermissions,
        sandboxed: bool,
    ) -> AgentCommand:
        binary = workflow.engine.command or "codex"
        parts = [binary]
        if workflow.engine.model:
            parts.append(shell_join_args(["-c", f"model={workflow.engine.model}"]))
        else:
            var = self.model_env_var(workflow)
            parts.append(f'${{{var}:+-c model="${var}"}}')

        if "shell" in permissions:
            mode = "--dangerously-bypass-approvals-and-sandbox"
        else:
            mode = "--full-auto"
            if permissions.tokens:
                self.logger.info(
                    "Codex cannot enforce per-tool restrictions; running with %s (%d tokens)",
                    mode,
                    len(permissions.tokens),
                )
        args = ["exec", mode, "--skip-git-repo-check", *workflow.engine.args]
        parts.append(shell_join_args(args))
        parts.append(self.prompt_argument())
        return AgentCommand(command=" ".join(parts))

    def engine_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {
            "CODEX_API_KEY": resolve_secret("codex"),
            "CODEX_HOME": CODEX_HOME,
            "RUST_LOG": "trace,hyper_util=info,mio=info,reqwest=info,os_info=info,codex_otel=warn",
        }
