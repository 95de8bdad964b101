"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

WriteConfig = Callable[[str], Path]


@pytest.fixture
def write_config(tmp_path: Path) -> WriteConfig:
    """Return a helper that writes dedented key-file text to ``config.ini``."""

    def _write(text: str) -> Path:
        path = tmp_path / "config.ini"
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host-level overrides from leaking into tests."""
    monkeypatch.delenv("CAPCONFIG_CONFIG_FILE", raising=False)
    monkeypatch.delenv("CAPCONFIG_NODE", raising=False)
