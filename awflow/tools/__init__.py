"""Command-line tools for awflow."""
