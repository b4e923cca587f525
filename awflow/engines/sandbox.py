"""
sandbox.py - Firewall (AWF) sandbox wrapper for the agent command.

When the firewall is enabled the agent command runs inside the AWF container
with egress restricted to an explicit domain list:

    sudo -E awf --env-all --container-workdir "${GITHUB_WORKSPACE}" \
      --mount ... --allow-domains ... --log-level info ... --skip-pull \
      -- '<agent command>' \
      2>&1 | tee /tmp/gh-aw/agent-stdio.log

The argument order is fixed so the compiled output is reproducible.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from awflow.config.runtime_config import (
    get_firewall_images,
    get_firewall_setting,
    get_firewall_version,
)
from awflow.workflow.types import WorkflowModel

from .models import Step
from .shell import shell_escape_arg, shell_join_args

logger = logging.getLogger(__name__)

# Basic infrastructure domains behind the "defaults" keyword
DEFAULT_ALLOWED_DOMAINS: Tuple[str, ...] = (
    "crl3.digicert.com",
    "crl4.digicert.com",
    "ocsp.digicert.com",
    "crl.geotrust.com",
    "ocsp.geotrust.com",
    "crl.globalsign.com",
    "ocsp.globalsign.com",
    "json-schema.org",
    "json.schemastore.org",
    "archive.ubuntu.com",
    "security.ubuntu.com",
    "ppa.launchpad.net",
    "keyserver.ubuntu.com",
    "azure.archive.ubuntu.com",
    "api.snapcraft.io",
    "packages.microsoft.com",
)

GITHUB_DOMAINS: Tuple[str, ...] = (
    "api.github.com",
    "github.com",
    "github.githubassets.com",
    "codeload.github.com",
    "objects.githubusercontent.com",
    "raw.githubusercontent.com",
    "uploads.github.com",
)

ECOSYSTEM_DOMAINS: Dict[str, Tuple[str, ...]] = {
    "defaults": DEFAULT_ALLOWED_DOMAINS,
    "github": GITHUB_DOMAINS,
    "node": ("registry.npmjs.org", "nodejs.org", "registry.yarnpkg.com"),
    "python": ("pypi.org", "files.pythonhosted.org", "pypi.python.org"),
}

CONTAINER_WORKDIR = '"${GITHUB_WORKSPACE}"'


def expand_domains(entries: Iterable[str]) -> List[str]:
    """Expand ecosystem keywords into their domains."""
    domains: List[str] = []
    for entry in entries:
        domains.extend(ECOSYSTEM_DOMAINS.get(entry, (entry,)))
    return domains


def image_tag(version: str) -> str:
    """Container image tag for a firewall version (leading 'v' stripped)."""
    return version[1:] if version.startswith("v") else version


class SandboxCommandBuilder:
    """Builds the firewall wrapper and its installation steps for one engine.

    Args:
        default_domains: Domains the engine always needs (its API endpoints).
        supports_firewall: Whether the engine can run inside the firewall.
        api_proxy_port: LLM-gateway port; adds --enable-api-proxy when set.
        logger: Logger handle; defaults to the module logger.
    """

    def __init__(
        self,
        default_domains: Iterable[str] = (),
        supports_firewall: bool = True,
        api_proxy_port: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.default_domains = tuple(default_domains)
        self.supports_firewall = supports_firewall
        self.api_proxy_port = api_proxy_port
        self.logger = logger or logging.getLogger(__name__)

    def is_enabled(self, workflow: WorkflowModel) -> bool:
        """True if the agent command must run inside the firewall."""
        firewall = workflow.firewall
        if firewall is None or not firewall.enabled:
            return False
        if not self.supports_firewall:
            self.logger.warning(
                "Engine '%s' does not support the network firewall; running unsandboxed",
                workflow.engine.id,
            )
            return False
        return True

    def firewall_version(self, workflow: WorkflowModel) -> str:
        firewall = workflow.firewall
        if firewall is not None and firewall.version:
            return firewall.version
        return get_firewall_version()

    def mounts(self, workflow: WorkflowModel) -> List[str]:
        mounts = set(workflow.engine.mounts)
        if workflow.sandbox is not None:
            mounts.update(workflow.sandbox.mounts)
        return sorted(mounts)

    def allowed_domains(self, workflow: WorkflowModel) -> str:
        """Sorted, comma-joined egress allow-list."""
        domains = set(self.default_domains)
        allowed = workflow.network.allowed if workflow.network is not None else ("defaults",)
        domains.update(expand_domains(allowed))
        if workflow.has_tool("github"):
            domains.update(GITHUB_DOMAINS)
        return ",".join(sorted(d for d in domains if d))

    def blocked_domains(self, workflow: WorkflowModel) -> str:
        if workflow.network is None:
            return ""
        return ",".join(sorted(set(expand_domains(workflow.network.blocked))))

    def wrapper_command(self, workflow: WorkflowModel) -> str:
        if workflow.sandbox is not None and workflow.sandbox.command:
            return workflow.sandbox.command
        return str(get_firewall_setting("command", "sudo -E awf"))

    def build_args(self, workflow: WorkflowModel) -> List[str]:
        """Firewall arguments in their fixed order."""
        firewall = workflow.firewall
        args = ["--env-all", "--container-workdir", CONTAINER_WORKDIR]

        for mount in self.mounts(workflow):
            args.extend(["--mount", mount])

        args.extend(["--allow-domains", self.allowed_domains(workflow)])
        blocked = self.blocked_domains(workflow)
        if blocked:
            args.extend(["--block-domains", blocked])

        log_level = firewall.log_level if firewall is not None and firewall.log_level else None
        args.extend(["--log-level", log_level or str(get_firewall_setting("log_level", "info"))])
        args.extend(["--proxy-logs-dir", str(get_firewall_setting("logs_dir"))])

        if workflow.has_mcp_servers():
            args.append("--enable-host-access")

        args.extend(["--image-tag", image_tag(self.firewall_version(workflow))])
        args.append("--skip-pull")

        if firewall is not None and firewall.ssl_bump:
            args.append("--ssl-bump")
            if firewall.allow_urls:
                args.extend(["--allow-urls", ",".join(firewall.allow_urls)])

        if self.api_proxy_port is not None:
            args.extend(["--enable-api-proxy", f"--api-proxy-port={self.api_proxy_port}"])
        if firewall is not None:
            args.extend(firewall.args)

        if workflow.sandbox is not None:
            args.extend(workflow.sandbox.args)
        return args

    def wrap(self, workflow: WorkflowModel, inner_command: str, log_file: str) -> str:
        """Wrap the agent command, teeing output into the log file."""
        sink = f"2>&1 | tee {shell_escape_arg(log_file)}"
        if not self.is_enabled(workflow):
            return f"{inner_command} {sink}"

        args = self.build_args(workflow)
        self.logger.debug("Sandbox wrapper args: %s", args)
        return (
            f"{self.wrapper_command(workflow)} {shell_join_args(args)} \\\n"
            f"  -- {shell_escape_arg(inner_command)} \\\n"
            f"  {sink}"
        )

    def container_images(self, workflow: WorkflowModel) -> List[str]:
        """Images staged before the run so the firewall can use --skip-pull."""
        tag = image_tag(self.firewall_version(workflow))
        images = {f"{image}:{tag}" for image in get_firewall_images()}
        for value in workflow.tools.values():
            if isinstance(value, dict) and isinstance(value.get("container"), str):
                images.add(value["container"])
        return sorted(images)

    def installation_steps(self, workflow: WorkflowModel) -> List[Step]:
        """AWF install and image staging steps; empty when disabled."""
        if not self.is_enabled(workflow):
            return []

        steps: List[Step] = []
        if workflow.sandbox is not None and workflow.sandbox.command:
            self.logger.info("Custom sandbox command configured; skipping AWF installation")
        else:
            version = shell_escape_arg(self.firewall_version(workflow))
            steps.append(
                Step(
                    name="Install awf binary",
                    run="\n".join(
                        [
                            f'echo "Installing awf via installer script (requested version: {version})"',
                            "curl -sSL https://raw.githubusercontent.com/github/gh-aw-firewall/main/install.sh"
                            f" | sudo AWF_VERSION={version} bash",
                            "which awf",
                            "awf --version",
                        ]
                    ),
                )
            )

        pulls = [f"docker pull {shell_escape_arg(image)}" for image in self.container_images(workflow)]
        steps.append(Step(name="Download container images", run="\n".join(["set -e", *pulls])))
        return steps
