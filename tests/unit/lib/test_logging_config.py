"""Tests for logging setup."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from lambda_deploy.lib.logging_config import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_default_level_is_info(self) -> None:
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_verbose_enables_debug(self) -> None:
        setup_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet_wins_over_verbose(self) -> None:
        setup_logging(verbose=True, quiet=True)
        assert logging.getLogger().level == logging.WARNING

    def test_sdk_loggers_are_silenced(self) -> None:
        setup_logging(verbose=True)
        assert logging.getLogger("botocore").level == logging.WARNING


def test_get_logger_uses_module_name() -> None:
    assert get_logger("lambda_deploy.deploy").name == "lambda_deploy.deploy"
