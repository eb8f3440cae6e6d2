"""Tests for logging setup."""

import logging

from support_chat.utils.logging import LOG_FORMAT, configure_logging


class TestConfigureLogging:
    def test_single_handler(self):
        configure_logging("INFO")
        logger = configure_logging("DEBUG")

        assert logger.name == "support_chat"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.handlers[0].formatter._fmt == LOG_FORMAT
        assert logger.propagate is False

    def test_quiets_third_party_loggers(self):
        configure_logging("debug")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
