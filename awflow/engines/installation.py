"""
installation.py - Installation step assembly.

Step order is part of the contract:

1. Validation of every required secret (fails fast with a documented diagnostic)
2. Engine CLI install, pinned to the resolved version
3. Companion binaries the agent command depends on
4. Plugin installs (engines with plugin support)
5. Sandbox (firewall) installation, only when the firewall is enabled

A custom engine command means the caller provides the agent binary, so no
installation steps are produced at all.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Mapping, Optional

from awflow.workflow.types import WorkflowModel

from .models import Step
from .secrets import resolve_secret
from .shell import shell_escape_arg

if TYPE_CHECKING:
    from .base import AgentEngine


def normalize_plugin_spec(spec: str) -> str:
    """Normalize a plugin reference for `<engine> plugin install`.

    URLs and marketplace references (`name@marketplace`) are kept as-is;
    `owner/repo/path` references become GitHub URLs.
    """
    if "://" in spec or "@" in spec:
        return spec
    if spec.count("/") > 1:
        return f"https://github.com/{spec}"
    return spec


def secret_validation_step(engine_name: str, secrets: Mapping[str, str], docs_url: str) -> Step:
    """Step that fails the job when any required secret is empty."""
    names = list(secrets)
    title = f"Validate {names[0]} secret" if len(names) == 1 else "Validate required secrets"
    lines = [
        "missing=()",
        f"for secret_name in {' '.join(names)}; do",
        '  if [ -z "${!secret_name}" ]; then',
        '    missing+=("$secret_name")',
        "  fi",
        "done",
        'if [ ${#missing[@]} -gt 0 ]; then',
        f'  echo "::error::Missing required secrets for {engine_name}: ${{missing[*]}}"',
    ]
    if docs_url:
        lines.append(f'  echo "See {docs_url} for setup instructions."')
    lines.extend(
        [
            "  exit 1",
            "fi",
            f'echo "All required secrets for {engine_name} are configured"',
        ]
    )
    return Step(name=title, id="validate-secret", env=secrets, run="\n".join(lines))


class InstallationOrchestrator:
    """Assembles an engine's installation steps."""

    def __init__(self, engine: "AgentEngine", logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def build(self, workflow: WorkflowModel) -> List[Step]:
        engine = self.engine
        if workflow.engine.command:
            self.logger.info(
                "Custom command configured for engine '%s'; skipping installation steps",
                engine.engine_id,
            )
            return []

        steps: List[Step] = [
            secret_validation_step(
                engine.display_name,
                engine.required_secrets(workflow),
                engine.docs_url,
            )
        ]

        version = engine.resolve_version(workflow)
        self.logger.debug("Installing %s version %s", engine.engine_id, version)
        steps.extend(engine.cli_install_steps(version))
        steps.extend(engine.companion_install_steps(workflow))
        steps.extend(self.plugin_steps(workflow))
        steps.extend(engine.sandbox.installation_steps(workflow))
        return steps

    def plugin_steps(self, workflow: WorkflowModel) -> List[Step]:
        if not workflow.plugins:
            return []
        if not self.engine.capabilities.plugins:
            self.logger.warning(
                "Engine '%s' does not support plugins; ignoring %d declared plugin(s)",
                self.engine.engine_id,
                len(workflow.plugins),
            )
            return []

        token = resolve_secret("plugins", workflow.plugins_github_token)
        steps = []
        for plugin in workflow.plugins:
            spec = shell_escape_arg(normalize_plugin_spec(plugin))
            steps.append(
                Step(
                    name=f"Install plugin: {plugin}",
                    env={"GITHUB_TOKEN": token},
                    run=self.engine.plugin_install_command(spec),
                )
            )
        return steps
