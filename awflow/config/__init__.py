"""Runtime configuration for the awflow compiler."""

from .runtime_config import (
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

__all__ = [
    "get_default_timeout_minutes",
    "get_engine_setting",
    "get_engine_version",
    "get_firewall_images",
    "get_firewall_setting",
    "get_firewall_version",
    "get_path",
    "get_runner_timeout_seconds",
    "reset_config",
]
