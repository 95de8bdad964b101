"""Enumerations for process exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes shared by the CLI and the daemon start-up path."""

    OK = 0
    CONFIG = 1
