"""
loader.py - Load workflow declarations from YAML.

Accepts either a plain YAML document or a markdown file whose frontmatter
(between leading `---` fences) holds the declaration.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from awflow.errors import ConfigurationError

from .types import WorkflowModel, workflow_from_dict

logger = logging.getLogger(__name__)


def extract_frontmatter(text: str) -> str:
    """Return the frontmatter block of a markdown document, or the text itself."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return text
    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            return "\n".join(lines[1:index])
    raise ConfigurationError("frontmatter", "unterminated frontmatter block")


def parse_workflow_text(text: str) -> WorkflowModel:
    """Parse a workflow declaration from YAML or markdown text."""
    try:
        data: Dict[str, Any] = yaml.safe_load(extract_frontmatter(text)) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError("workflow", f"invalid YAML: {e}") from e
    return workflow_from_dict(data)


def load_workflow(path: Union[str, Path]) -> WorkflowModel:
    """Load a workflow declaration from a file.

    Raises:
        ConfigurationError: If the file is missing or cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError("workflow", f"file not found: {path}")
    logger.debug("Loading workflow from %s", path)
    return parse_workflow_text(path.read_text(encoding="utf-8"))
