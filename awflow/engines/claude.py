"""
claude.py - Claude Code CLI engine.

Capability tokens become Claude tool names for `--allowed-tools`:

    shell(git)     -> Bash(git)
    write          -> Edit, MultiEdit, NotebookEdit, Write
    github(x)      -> mcp__github__x
    web_fetch      -> WebFetch

When the firewall is enabled, model traffic goes through the AWF API proxy
(LLM gateway) on port 10000.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from awflow.config.runtime_config import get_engine_setting
from awflow.workflow.types import WorkflowModel

from .base import AgentEngine
from .models import AgentCommand, EngineCapabilities, Step, ToolPermissions
from .secrets import secret_reference
from .shell import shell_join_args

CLAUDE_DEFAULT_DOMAINS = (
    "anthropic.com",
    "api.anthropic.com",
    "registry.npmjs.org",
    "sentry.io",
    "statsig.anthropic.com",
    "statsig.com",
)

# Read-only tools granted whenever an allowlist is emitted
CLAUDE_BASE_TOOLS = ("ExitPlanMode", "Glob", "Grep", "LS", "NotebookRead", "Read", "Task", "TodoWrite")
CLAUDE_WRITE_TOOLS = ("Edit", "MultiEdit", "NotebookEdit", "Write")


def node_setup_step(node_version: str) -> Step:
    return Step(
        name="Setup Node.js",
        uses="actions/setup-node@v4",
        with_args={"node-version": node_version, "package-manager-cache": False},
    )


def _split_token(token: str) -> Tuple[str, Optional[str]]:
    """Split `name(arg)` into (name, arg); plain tokens give (token, None)."""
    if token.endswith(")") and "(" in token:
        name, _, rest = token.partition("(")
        return name, rest[:-1]
    return token, None


def claude_allowed_tools(permissions: ToolPermissions, web_search: bool = False) -> Optional[List[str]]:
    """Claude tool names for the tokens; None when every tool is allowed."""
    if permissions.unrestricted:
        return None
    tools = set(CLAUDE_BASE_TOOLS)
    for token in permissions.tokens:
        name, arg = _split_token(token)
        if name == "shell":
            tools.add(f"Bash({arg})" if arg is not None else "Bash")
        elif name == "write":
            tools.update(CLAUDE_WRITE_TOOLS)
        elif name == "web_fetch":
            tools.add("WebFetch")
        elif arg is not None:
            tools.add(f"mcp__{name}__{arg}")
        else:
            tools.add(f"mcp__{name}")
    if web_search:
        tools.add("WebSearch")
    return sorted(tools)


class ClaudeEngine(AgentEngine):
    """Engine for the Claude Code CLI."""

    description = "Uses Claude Code with full MCP tool support and allow-listing"
    capabilities = EngineCapabilities(
        tools_allowlist=True,
        http_transport=True,
        max_turns=True,
        web_fetch=True,
        web_search=True,
        firewall=True,
        plugins=True,
        llm_gateway=True,
    )
    log_parser_id = "parse_claude_log"
    execution_step_name = "Execute Claude Code CLI"
    default_domains = CLAUDE_DEFAULT_DOMAINS
    api_proxy_port = 10000
    mcp_config_path = "/tmp/gh-aw/mcp-config/mcp-servers.json"
    model_var_suffix = "CLAUDE"

    @property
    def engine_id(self) -> str:
        return "claude"

    @property
    def display_name(self) -> str:
        return "Claude Code"

    def primary_secrets(self, workflow: WorkflowModel) -> Dict[str, str]:
        return {"ANTHROPIC_API_KEY": secret_reference("ANTHROPIC_API_KEY")}

    def cli_install_steps(self, version: str) -> List[Step]:
        node_version = str(get_engine_setting(self.engine_id, "node_version", "24"))
        return [
            node_setup_step(node_version),
            Step(
                name="Install Claude Code CLI",
                run=f"npm install -g --silent @anthropic-ai/claude-code@{version}",
            ),
        ]

    def build_agent_command(
        self,
        workflow: WorkflowModel,
        permissions: ToolPermissions,
        sandboxed: bool,
    ) -> AgentCommand:
        binary = workflow.engine.command or "claude"
        args = [
            "--print",
            "--permission-mode", "bypassPermissions",
            "--output-format", "stream-json",
            "--verbose",
        ]
        if workflow.has_mcp_servers():
            args.extend(["--mcp-config", self.mcp_config_path])
        if workflow.engine.max_turns:
            args.extend(["--max-turns", workflow.engine.max_turns])
        if workflow.engine.model:
            args.extend(["--model", workflow.engine.model])

        allowed = claude_allowed_tools(permissions, web_search=workflow.has_tool("web-search"))
        if allowed is not None:
            args.extend(["--allowed-tools", ",".join(allowed)])
        args.extend(workflow.engine.args)

        parts = [binary, shell_join_args(args)]
        if not workflow.engine.model:
            var = self.model_env_var(workflow)
            parts.append(f'${{{var}:+ --model "${var}"}}')
        parts.append(self.prompt_argument())
        return AgentCommand(command=" ".join(parts))

    def engine_env(self, workflow: WorkflowModel) -> Dict[str, str]:
        env = {
            "ANTHROPIC_API_KEY": secret_reference("ANTHROPIC_API_KEY"),
            "DISABLE_TELEMETRY": "1",
            "DISABLE_ERROR_REPORTING": "1",
            "DISABLE_BUG_COMMAND": "1",
        }
        if workflow.tools_startup_timeout:
            env["MCP_TIMEOUT"] = str(workflow.tools_startup_timeout * 1000)
        if workflow.tools_timeout:
            env["MCP_TOOL_TIMEOUT"] = str(workflow.tools_timeout * 1000)
        return env
