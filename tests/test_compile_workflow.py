"""Tests for the awflow-compile command-line tool."""

import json

import pytest
import yaml

from awflow.tools.compile_workflow import main


WORKFLOW = """---
name: docs
engine: copilot
tools:
  edit:
  bash: [git]
network:
  firewall: true
---

Update the docs.
"""


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "docs.md"
    path.write_text(WORKFLOW)
    return path


class TestCompileWorkflow:
    def test_prints_steps_as_yaml(self, workflow_file, capsys):
        assert main([str(workflow_file)]) == 0
        steps = yaml.safe_load(capsys.readouterr().out)
        names = [s["name"] for s in steps]
        assert names[0] == "Validate COPILOT_GITHUB_TOKEN secret"
        assert "Install awf binary" in names
        assert steps[-1]["id"] == "agentic_execution"
        assert list(steps[-1]) == ["name", "id", "timeout-minutes", "env", "run"]

    def test_engine_override(self, workflow_file, capsys):
        assert main([str(workflow_file), "--engine", "claude"]) == 0
        steps = yaml.safe_load(capsys.readouterr().out)
        assert steps[-1]["name"] == "Execute Claude Code CLI"

    def test_log_file_option(self, workflow_file, capsys):
        assert main([str(workflow_file), "--log-file", "/tmp/custom.log"]) == 0
        steps = yaml.safe_load(capsys.readouterr().out)
        assert "tee /tmp/custom.log" in steps[-1]["run"]

    def test_unknown_engine(self, workflow_file, capsys):
        assert main([str(workflow_file), "--engine", "gemini"]) == 1
        assert "unknown engine 'gemini'" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.md")]) == 1
        assert "file not found" in capsys.readouterr().err

    def test_list_engines(self, capsys):
        assert main(["--list-engines"]) == 0
        engines = json.loads(capsys.readouterr().out)
        assert [e["id"] for e in engines] == ["claude", "codex", "copilot", "copilot-sdk"]

    def test_workflow_required(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_validation_issues_are_reported(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("engine: copilot\ntools:\n  bash: git\n")
        assert main([str(path)]) == 0
        assert "warning: tools.bash" in capsys.readouterr().err
