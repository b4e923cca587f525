"""
shell.py - Shell escaping for compiled command lines.

Every argument that ends up in a step's `run` body goes through
shell_escape_arg. Arguments that are already double-quoted for variable
expansion (e.g. "${GITHUB_WORKSPACE}") are passed through untouched so the
expansion happens at run time.
"""

from __future__ import annotations

import re
import shlex
from typing import Iterable

_SAFE_ARG = re.compile(r"^[A-Za-z0-9_@%+=:,./-]+$")


def _is_prequoted(arg: str) -> bool:
    if len(arg) < 2 or not (arg.startswith('"') and arg.endswith('"')):
        return False
    return '"' not in arg[1:-1].replace('\\"', "")


def shell_escape_arg(arg: str) -> str:
    """Quote one argument for a POSIX shell."""
    if _SAFE_ARG.match(arg) or _is_prequoted(arg):
        return arg
    return shlex.quote(arg)


def shell_join_args(args: Iterable[str]) -> str:
    """Quote and join arguments with single spaces."""
    return " ".join(shell_escape_arg(a) for a in args)
