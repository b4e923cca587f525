"""Tests for tool permission resolution.

Covers the category rules (shell, edit, github, tool-provider servers, safe
outputs/inputs, web-fetch), the unrestricted sentinel, and the summary
comments rendered into execution steps.
"""

import logging

import pytest

from awflow.engines.models import ToolPermissions
from awflow.engines.tools import describe_tool_permissions, resolve_tool_permissions


class TestShellTools:
    """bash/shell declarations."""

    def test_command_list_becomes_shell_tokens(self):
        result = resolve_tool_permissions({"bash": ["echo", "ls"]})
        assert result == ToolPermissions.only(["shell(echo)", "shell(ls)"])
        assert result.as_list() == ["shell(echo)", "shell(ls)"]

    @pytest.mark.parametrize("wildcard", ["*", ":*"])
    def test_wildcard_is_unrestricted(self, wildcard):
        result = resolve_tool_permissions({"bash": [wildcard]})
        assert result.unrestricted
        assert result.as_list() is None

    def test_wildcard_short_circuits_everything_else(self):
        """Other categories never narrow a shell wildcard."""
        tools = {
            "bash": ["git", ":*", "ls"],
            "edit": None,
            "github": {"allowed": ["get_issue"]},
        }
        result = resolve_tool_permissions(tools, safe_outputs_enabled=True)
        assert result == ToolPermissions.all_tools()

    @pytest.mark.parametrize("value", [None, True])
    def test_bare_declaration_grants_plain_shell(self, value):
        assert resolve_tool_permissions({"bash": value}).tokens == ("shell",)

    def test_shell_alias(self):
        assert resolve_tool_permissions({"shell": ["make"]}).tokens == ("shell(make)",)

    def test_false_disables_shell(self):
        result = resolve_tool_permissions({"bash": False})
        assert not result.unrestricted
        assert result.tokens == ()

    def test_malformed_declaration_warns_and_falls_back(self, caplog):
        result = resolve_tool_permissions({"bash": "echo"})
        assert result.tokens == ("shell",)
        assert "malformed tools.bash" in caplog.text

    def test_non_string_entries_are_skipped(self, caplog):
        result = resolve_tool_permissions({"bash": ["git", 42]})
        assert result.tokens == ("shell(git)",)
        assert "non-string entry" in caplog.text


class TestOtherCategories:
    """edit, github, web-fetch, safe outputs/inputs and providers."""

    def test_edit_maps_to_write(self):
        assert resolve_tool_permissions({"edit": None}).tokens == ("write",)

    def test_safe_outputs_token(self):
        assert resolve_tool_permissions({}, safe_outputs_enabled=True).tokens == ("safeoutputs",)

    def test_safe_inputs_token(self):
        assert resolve_tool_permissions({}, safe_inputs_enabled=True).tokens == ("safeinputs",)

    def test_web_fetch_token(self):
        assert resolve_tool_permissions({"web-fetch": None}).tokens == ("web_fetch",)

    def test_github_allowed_list(self):
        tools = {"github": {"allowed": ["list_commits", "get_file_contents"]}}
        assert resolve_tool_permissions(tools).as_list() == [
            "github(get_file_contents)",
            "github(list_commits)",
        ]

    def test_github_without_allowed_is_full_access(self):
        assert resolve_tool_permissions({"github": None}).tokens == ("github",)
        assert resolve_tool_permissions({"github": {"github-token": "x"}}).tokens == ("github",)

    def test_github_wildcard_collapses_category_only(self):
        result = resolve_tool_permissions({"github": {"allowed": ["*", "x"]}})
        assert not result.unrestricted
        assert result.tokens == ("github",)

    def test_tool_provider_server(self):
        tools = {"my-server": {"command": "node", "allowed": ["query", "fetch"]}}
        assert resolve_tool_permissions(tools).as_list() == [
            "my-server",
            "my-server(fetch)",
            "my-server(query)",
        ]

    def test_http_provider_without_allowed(self):
        tools = {"remote": {"url": "https://mcp.example.com", "type": "http"}}
        assert resolve_tool_permissions(tools).tokens == ("remote",)

    def test_unknown_non_provider_tools_are_ignored(self):
        assert resolve_tool_permissions({"something": None, "other": True}).tokens == ()

    def test_setting_keys_are_not_tools(self):
        assert resolve_tool_permissions({"startup-timeout": 30, "timeout": 60}).tokens == ()


class TestResultShape:
    """Ordering, deduplication and the empty/unrestricted distinction."""

    def test_empty_declarations_are_restricted_to_nothing(self):
        result = resolve_tool_permissions({})
        assert not result.unrestricted
        assert result.as_list() == []
        assert result != ToolPermissions.all_tools()

    def test_output_is_sorted_and_deduplicated(self):
        tools = {
            "shell": ["ls", "git"],
            "bash": ["git"],
            "web-fetch": None,
            "edit": None,
        }
        result = resolve_tool_permissions(tools, safe_outputs_enabled=True)
        assert list(result.tokens) == sorted(set(result.tokens))
        assert result.tokens == ("safeoutputs", "shell(git)", "shell(ls)", "web_fetch", "write")

    def test_declaration_order_does_not_matter(self):
        first = resolve_tool_permissions({"edit": None, "bash": ["b", "a"], "github": None})
        second = resolve_tool_permissions({"github": None, "bash": ["a", "b"], "edit": None})
        assert first == second


class TestToolPermissionsValue:
    """The tagged permissions value."""

    def test_unrestricted_cannot_carry_tokens(self):
        with pytest.raises(ValueError):
            ToolPermissions(unrestricted=True, tokens=("shell",))

    def test_contains(self):
        assert "anything" in ToolPermissions.all_tools()
        assert "shell" in ToolPermissions.only(["shell"])
        assert "shell" not in ToolPermissions.only([])


class TestDescribeToolPermissions:
    """Summary comments for step bodies."""

    def test_unrestricted(self):
        assert describe_tool_permissions(ToolPermissions.all_tools()) == [
            "# Available tools: all tools enabled (wildcard)"
        ]

    def test_empty(self):
        assert describe_tool_permissions(ToolPermissions.only([])) == []

    def test_tokens(self):
        lines = describe_tool_permissions(ToolPermissions.only(["write", "shell(git)"]), label="Claude tools")
        assert lines == ["# Claude tools (sorted):", "# - shell(git)", "# - write"]

    def test_custom_logger_receives_warnings(self, caplog):
        log = logging.getLogger("awflow.test.tools")
        with caplog.at_level(logging.WARNING, logger="awflow.test.tools"):
            resolve_tool_permissions({"bash": 5}, log=log)
        assert any(r.name == "awflow.test.tools" for r in caplog.records)
