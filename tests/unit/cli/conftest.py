"""Shared fixtures for CLI tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None]:
    """Drop handlers installed by setup_logging on CliRunner's streams."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
