#!/usr/bin/env python3
"""Compile a workflow declaration into CI steps.

Prints the installation and execution steps for the workflow's engine as
YAML, ready to paste into a job's `steps:` list.

Usage:
    awflow-compile workflow.md
    awflow-compile workflow.yaml --engine claude
    awflow-compile workflow.yaml --list-engines
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from awflow.engines import get_default_registry
from awflow.engines.base import AGENT_LOG_FILE
from awflow.errors import AwflowError
from awflow.workflow import load_workflow

logger = logging.getLogger(__name__)



def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Compile a workflow declaration into CI steps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("workflow", nargs="?", type=Path, help="Workflow file (YAML or markdown)")
    parser.add_argument("--engine", "-e", help="Override the workflow's engine")
    parser.add_argument(
        "--log-file",
        default=AGENT_LOG_FILE,
        help=f"Agent output log file (default: {AGENT_LOG_FILE})",
    )
    parser.add_argument(
        "--list-engines",
        action="store_true",
        help="List available engines as JSON and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    registry = get_default_registry()
    if args.list_engines:
        print(json.dumps(registry.list_engines(), indent=2))
        return 0
    if args.workflow is None:
        parser.error("a workflow file is required")

    try:
        workflow = load_workflow(args.workflow)
        if args.engine:
            workflow = dataclasses.replace(
                workflow, engine=dataclasses.replace(workflow.engine, id=args.engine)
            )
        compiled = registry.compile(workflow, args.log_file)
    except AwflowError as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return 1

    for issue in workflow.issues:
        print(f"warning: {issue}", file=sys.stderr)

    steps = [step.to_dict() for step in compiled.steps]
    print(yaml.safe_dump(steps, sort_keys=False, default_flow_style=False, width=120), end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
