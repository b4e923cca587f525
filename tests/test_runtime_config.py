"""Tests for the runtime configuration registry (runtime.yaml + env overrides)."""

import os
from unittest.mock import patch

import pytest

from awflow.config import runtime_config
from awflow.config.runtime_config import (
    get_default_timeout_minutes,
    get_engine_setting,
    get_engine_version,
    get_firewall_images,
    get_firewall_setting,
    get_firewall_version,
    get_path,
    get_runner_timeout_seconds,
    reset_config,
)


class TestDefaults:
    """Values shipped in runtime.yaml."""

    def test_engine_versions(self):
        assert get_engine_version("copilot") == "0.0.374"
        assert get_engine_version("copilot-sdk") == "0.0.374"
        assert get_engine_version("claude") == "2.0.76"
        assert get_engine_version("codex") == "0.77.0"

    def test_unknown_engine(self):
        assert get_engine_version("nope") is None
        assert get_engine_setting("nope", "cli_path", "fallback") == "fallback"

    def test_firewall(self):
        assert get_firewall_version() == "v0.8.2"
        assert get_firewall_setting("command") == "sudo -E awf"
        assert get_firewall_images() == [
            "ghcr.io/github/gh-aw-firewall/squid",
            "ghcr.io/github/gh-aw-firewall/agent",
        ]

    def test_paths_and_timeouts(self):
        assert get_path("prompt_file") == "/tmp/gh-aw/aw-prompts/prompt.txt"
        assert get_path("logs_folder") == "/tmp/gh-aw/sandbox/agent/logs/"
        assert get_default_timeout_minutes() == 20
        assert get_runner_timeout_seconds() == 1800


class TestEnvironmentOverrides:
    def test_engine_version_env(self):
        with patch.dict(os.environ, {"AWFLOW_COPILOT_SDK_VERSION": "0.0.380"}):
            assert get_engine_version("copilot-sdk") == "0.0.380"
        assert get_engine_version("copilot-sdk") == "0.0.374"

    def test_firewall_version_env(self):
        with patch.dict(os.environ, {"AWFLOW_FIREWALL_VERSION": "v0.9.0"}):
            assert get_firewall_version() == "v0.9.0"

    def test_env_key(self):
        assert runtime_config._env_key("copilot-sdk", "version") == "AWFLOW_COPILOT_SDK_VERSION"


class TestConfigFile:
    """Loading, caching and fallback behavior."""

    def test_missing_file_uses_builtin_defaults(self, tmp_path):
        with patch.object(runtime_config, "_CONFIG_PATH", tmp_path / "missing.yaml"):
            reset_config()
            assert get_engine_version("claude") == "2.0.76"
            assert get_path("prompt_file") == "/tmp/gh-aw/aw-prompts/prompt.txt"

    def test_partial_file_falls_back_per_key(self, tmp_path):
        config_file = tmp_path / "runtime.yaml"
        config_file.write_text('engines:\n  claude:\n    version: "9.9.9"\n')
        with patch.object(runtime_config, "_CONFIG_PATH", config_file):
            reset_config()
            assert get_engine_version("claude") == "9.9.9"
            assert get_engine_version("codex") == "0.77.0"
            assert get_engine_setting("claude", "node_version") == "24"
            assert get_firewall_version() == "v0.8.2"

    def test_config_is_cached_until_reset(self, tmp_path):
        config_file = tmp_path / "runtime.yaml"
        config_file.write_text("defaults:\n  timeout_minutes: 30\n")
        with patch.object(runtime_config, "_CONFIG_PATH", config_file):
            reset_config()
            assert get_default_timeout_minutes() == 30
            config_file.write_text("defaults:\n  timeout_minutes: 40\n")
            assert get_default_timeout_minutes() == 30
            reset_config()
            assert get_default_timeout_minutes() == 40

    @pytest.mark.parametrize("name", ["prompt_file", "logs_folder", "mcp_config"])
    def test_every_path_is_defined(self, name):
        assert get_path(name).startswith("/")
