# SPDX-License-Identifier: MIT
"""Tests for the logging configuration module."""

import logging
from io import StringIO
from unittest.mock import patch

import pytest

from zooquest_sync.logging_config import (
    DETAIL_LOGGER_NAME,
    STATUS_LOGGER_NAME,
    FlushingStreamHandler,
    get_detail_logger,
    get_status_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logging():
    """Close and drop handlers of both loggers around each test."""

    def _reset():
        for name in (DETAIL_LOGGER_NAME, STATUS_LOGGER_NAME):
            logger = logging.getLogger(name)
            for handler in logger.handlers[:]:
                handler.close()
            logger.handlers.clear()

    _reset()
    yield
    _reset()


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_creates_log_file(self, tmp_path):
        setup_logging(tmp_path / "logs")

        assert (tmp_path / "logs" / "zooquest-sync.log").is_file()

    def test_default_directory_is_in_cwd(self, tmp_path):
        with patch("pathlib.Path.cwd", return_value=tmp_path):
            setup_logging()

        assert (tmp_path / ".zooquest-sync" / "zooquest-sync.log").exists()

    def test_detail_logger_is_file_only(self, tmp_path):
        detail_logger, _ = setup_logging(tmp_path)

        assert detail_logger.name == DETAIL_LOGGER_NAME
        assert detail_logger.level == logging.DEBUG
        assert detail_logger.propagate is False
        assert [type(h) for h in detail_logger.handlers] == [logging.FileHandler]

    def test_status_logger_writes_console_and_file(self, tmp_path):
        _, status_logger = setup_logging(tmp_path)

        assert status_logger.name == STATUS_LOGGER_NAME
        assert status_logger.level == logging.INFO
        handler_types = {type(h) for h in status_logger.handlers}
        assert handler_types == {FlushingStreamHandler, logging.FileHandler}

    def test_status_message_reaches_stderr_and_file(self, tmp_path):
        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            _, status_logger = setup_logging(tmp_path)
            status_logger.warning("Connectivity lost; writes will be queued")

        assert "Connectivity lost" in mock_stderr.getvalue()
        assert STATUS_LOGGER_NAME not in mock_stderr.getvalue()
        log_content = (tmp_path / "zooquest-sync.log").read_text()
        assert "Connectivity lost" in log_content

    def test_detail_message_not_on_console(self, tmp_path):
        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            detail_logger, _ = setup_logging(tmp_path)
            detail_logger.debug("Cache hit for key 'animals_all'")

        assert "animals_all" not in mock_stderr.getvalue()
        log_content = (tmp_path / "zooquest-sync.log").read_text()
        assert f"{DETAIL_LOGGER_NAME} - DEBUG - Cache hit" in log_content

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        setup_logging(tmp_path)
        detail_logger, status_logger = setup_logging(tmp_path)

        assert len(detail_logger.handlers) == 1
        assert len(status_logger.handlers) == 2


class TestLoggerAccessors:
    """Test cases for the logger getters."""

    def test_getters_return_named_loggers(self):
        assert get_detail_logger() is logging.getLogger(DETAIL_LOGGER_NAME)
        assert get_status_logger() is logging.getLogger(STATUS_LOGGER_NAME)
