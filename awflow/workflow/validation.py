"""
validation.py - Shape validation for workflow declarations.

Problems found here are recoverable: they are reported as ValidationIssue
records and the parser falls back to conservative defaults for the offending
entry. Fatal problems (a missing engine id, a non-integer timeout) are raised
by the parser itself as ConfigurationError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from awflow.errors import ValidationIssue

logger = logging.getLogger(__name__)

_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_STRING_MAP = {"type": "object", "additionalProperties": {"type": "string"}}

_COMMAND_LIST = {
    "anyOf": [
        {"type": "null"},
        {"type": "boolean"},
        _STRING_LIST,
    ]
}

_TOOL_PROVIDER = {
    "type": "object",
    "properties": {
        "allowed": _STRING_LIST,
        "headers": _STRING_MAP,
        "env": _STRING_MAP,
        "github-token": {"type": "string"},
    },
}

WORKFLOW_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "engine": {
            "anyOf": [
                {"type": "string"},
                {
                    "type": "object",
                    "required": ["id"],
                    "properties": {
                        "id": {"type": "string"},
                        "version": {"type": ["string", "number"]},
                        "model": {"type": "string"},
                        "command": {"type": "string"},
                        "max-turns": {"type": ["integer", "string"]},
                        "env": _STRING_MAP,
                        "args": _STRING_LIST,
                        "mounts": _STRING_LIST,
                        "steps": {"type": "array", "items": {"type": "object"}},
                    },
                },
            ]
        },
        "tools": {
            "type": ["object", "null"],
            "properties": {
                "bash": _COMMAND_LIST,
                "shell": _COMMAND_LIST,
                "edit": {"type": ["object", "null", "boolean"]},
                "web-fetch": {"type": ["object", "null", "boolean"]},
                "web-search": {"type": ["object", "null", "boolean"]},
                "github": {"anyOf": [{"type": "null"}, _TOOL_PROVIDER]},
                "startup-timeout": {"type": ["integer", "string"]},
                "timeout": {"type": ["integer", "string"]},
            },
            "additionalProperties": {
                "anyOf": [
                    {"type": "null"},
                    {"type": "boolean"},
                    _STRING_LIST,
                    _TOOL_PROVIDER,
                ]
            },
        },
        "network": {
            "anyOf": [
                {"enum": ["defaults"]},
                {
                    "type": "object",
                    "properties": {
                        "allowed": _STRING_LIST,
                        "blocked": _STRING_LIST,
                        "firewall": {"type": ["boolean", "object", "string", "null"]},
                    },
                },
            ]
        },
        "timeout-minutes": {"type": ["integer", "string"]},
        "github-token": {"type": "string"},
        "safe-outputs": {"type": ["object", "null"]},
        "safe-inputs": {"type": ["object", "null"]},
        "plugins": {
            "anyOf": [
                _STRING_LIST,
                {
                    "type": "object",
                    "properties": {
                        "repos": _STRING_LIST,
                        "github-token": {"type": "string"},
                    },
                },
            ]
        },
    },
}


def validate_workflow_dict(data: Dict[str, Any]) -> List[ValidationIssue]:
    """Validate raw workflow data against WORKFLOW_SCHEMA.

    Args:
        data: Parsed frontmatter mapping.

    Returns:
        List of issues. Empty list means the shapes are valid.
    """
    issues: List[ValidationIssue] = []
    validator = Draft7Validator(WORKFLOW_SCHEMA)
    for error in validator.iter_errors(data):
        path = ".".join(str(p) for p in error.absolute_path) or "root"
        issues.append(ValidationIssue(path=path, message=error.message, value=error.instance))

    for issue in issues:
        logger.warning("Workflow declaration issue at %s: %s", issue.path, issue.message)
    return issues
