"""capconfig package bootstrap.

Configuration resolution for the capture daemon. Consumers normally only
need :class:`~capconfig.config.ConfigState` and the frozen
:class:`~capconfig.config.CaptureConfig` it produces.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
