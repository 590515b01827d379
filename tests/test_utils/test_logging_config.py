"""Tests for the package logging setup."""

import logging

import pytest

from fieldcrm.logging_config import (
    DEV_FORMAT,
    PROD_FORMAT,
    _coerce_level,
    configure_logging,
)


@pytest.fixture(autouse=True)
def restore_logger():
    pkg_logger = logging.getLogger("fieldcrm")
    saved = (pkg_logger.level, pkg_logger.propagate, pkg_logger.handlers[:])
    yield pkg_logger
    pkg_logger.setLevel(saved[0])
    pkg_logger.propagate = saved[1]
    pkg_logger.handlers[:] = saved[2]


class TestConfigureLogging:
    def test_single_handler_after_repeat_calls(self, restore_logger):
        configure_logging("DEBUG")
        configure_logging("DEBUG")
        assert len(restore_logger.handlers) == 1
        assert restore_logger.level == logging.DEBUG
        assert restore_logger.propagate is False

    def test_format_choice(self, restore_logger):
        configure_logging("INFO", verbose=False)
        assert restore_logger.handlers[0].formatter._fmt == PROD_FORMAT
        configure_logging("INFO", verbose=True)
        assert restore_logger.handlers[0].formatter._fmt == DEV_FORMAT

    def test_quiets_urllib3(self):
        configure_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestCoerceLevel:
    def test_names(self):
        assert _coerce_level(" warning ") == logging.WARNING

    def test_ints_pass_through(self):
        assert _coerce_level(15) == 15

    def test_garbage_defaults_to_info(self):
        assert _coerce_level("LOUD") == logging.INFO
        assert _coerce_level(None) == logging.INFO
