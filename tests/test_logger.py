"""Tests for logger module."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

from agentgate.util.logger import (
    DATE_FORMAT,
    LOG_COLORS,
    LOG_FORMAT,
    NOISY_LOGGERS,
    RESET_COLOR,
    ColorFormatter,
    PromptToolkitHandler,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


class TestShouldUseColor:
    """Tests for should_use_color function."""

    @patch('sys.stderr.isatty')
    def test_should_use_color_tty(self, mock_isatty):
        """Test color is enabled for TTY."""
        mock_isatty.return_value = True
        assert should_use_color() is True

    @patch('sys.stderr.isatty')
    def test_should_use_color_exception(self, mock_isatty):
        """Test color returns False on exception."""
        mock_isatty.side_effect = Exception("Error")
        assert should_use_color() is False


class TestColorFormatter:
    """Tests for ColorFormatter class."""

    def test_wraps_message_in_level_color(self):
        """Test records are wrapped in their level's colour."""
        formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        record = logging.LogRecord("test", logging.WARNING, "test.py", 10, "careful", None, None)

        output = formatter.format(record)

        assert output.startswith(LOG_COLORS["WARNING"])
        assert output.endswith(RESET_COLOR)
        assert "careful" in output


class TestSetupLogger:
    """Tests for setup_logger and get_logger."""

    def test_handlers_are_attached_once(self):
        """Test repeated setup does not duplicate handlers."""
        logger = setup_logger("agentgate-test-once")
        count = len(logger.handlers)

        assert get_logger("agentgate-test-once") is logger
        assert len(logger.handlers) == count

    def test_console_and_file_handlers(self):
        """Test the console handler logs INFO and the rotating file logs DEBUG."""
        logger = get_logger("agentgate-test-handlers")

        console = [h for h in logger.handlers if isinstance(h, PromptToolkitHandler)]
        files = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]

        assert len(console) == 1 and console[0].level == logging.INFO
        assert len(files) == 1 and files[0].level == logging.DEBUG
        assert logger.propagate is False


def test_noisy_loggers_are_silenced():
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.ERROR


def test_handle_exception_logs_errors():
    with patch("agentgate.util.logger.logging.error") as mock_error:
        handle_exception(ValueError, ValueError("bad"), None)
    mock_error.assert_called_once()


def test_handle_exception_passes_keyboard_interrupt_through():
    with patch("agentgate.util.logger.sys.__excepthook__") as mock_hook:
        handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)
    mock_hook.assert_called_once()
