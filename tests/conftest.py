"""
Shared fixtures for awflow tests.

Provides workflow builders, a fresh engine registry and runtime-config
isolation so tests never see each other's cached configuration.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

# Add repo root to path for imports
_repo_root = Path(__file__).resolve().parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

from awflow.config.runtime_config import reset_config
from awflow.engines.registry import EngineRegistry
from awflow.workflow.types import WorkflowModel, workflow_from_dict


LOG_FILE = "/tmp/gh-aw/agent-stdio.log"


# ============================================================================
# Configuration Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_runtime_config():
    """Drop the cached runtime.yaml before and after every test."""
    reset_config()
    yield
    reset_config()


# ============================================================================
# Workflow Fixtures
# ============================================================================


@pytest.fixture
def make_workflow() -> Callable[..., WorkflowModel]:
    """Build a WorkflowModel from frontmatter-shaped keyword data.

    Usage:
        wf = make_workflow(engine="claude", tools={"bash": ["git"]})
        wf = make_workflow(**{"safe-outputs": {"create-issue": {}}})
    """

    def _make(**data: Any) -> WorkflowModel:
        return workflow_from_dict(dict(data))

    return _make


@pytest.fixture
def firewalled() -> Dict[str, Any]:
    """Network section that enables the firewall."""
    return {"allowed": ["defaults"], "firewall": True}


@pytest.fixture
def registry() -> EngineRegistry:
    """A freshly built registry of the built-in engines."""
    return EngineRegistry()


@pytest.fixture
def log_file() -> str:
    return LOG_FILE
