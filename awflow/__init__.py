"""
awflow - Engine compiler for agentic CI workflows.

Turns an engine-agnostic workflow description into the installation and
execution steps a CI job needs to run an AI agent, optionally inside a
network-firewalled sandbox.

Usage:
    from awflow.engines import get_default_registry
    from awflow.workflow import load_workflow

    workflow = load_workflow("workflow.yaml")
    compiled = get_default_registry().compile(workflow, "/tmp/gh-aw/agent-stdio.log")
"""

__version__ = "0.4.0"
