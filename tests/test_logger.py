"""
Tests for logger setup driven by Config.
"""

import logging
from datetime import datetime

import pytest

from scoreboard.config import Config
from scoreboard.utils.logger import console_level, log_file_path, setup_logger


@pytest.fixture
def log_config(monkeypatch, tmp_path):
    monkeypatch.setattr(Config, 'LOG_DIR', str(tmp_path / 'logs'))
    monkeypatch.setattr(Config, 'LOG_FILE_PREFIX', 'scoretest')
    monkeypatch.setattr(Config, 'LOG_TO_FILE', True)
    monkeypatch.setattr(Config, 'LOG_LEVEL', '')
    monkeypatch.setattr(Config, 'DEBUG', False)
    return tmp_path / 'logs'


def _release(logger):
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


class TestLogFilePath:

    def test_uses_configured_directory_and_prefix(self, log_config):
        path = log_file_path(when=datetime(2024, 3, 5))

        assert path == log_config / 'scoretest_20240305.log'

    def test_explicit_directory_wins(self, log_config, tmp_path):
        path = log_file_path(str(tmp_path / 'elsewhere'), datetime(2024, 3, 5))

        assert path.parent == tmp_path / 'elsewhere'


class TestConsoleLevel:

    def test_follows_debug_flag(self, log_config, monkeypatch):
        assert console_level() == logging.INFO
        monkeypatch.setattr(Config, 'DEBUG', True)
        assert console_level() == logging.DEBUG

    def test_log_level_overrides_debug_flag(self, log_config, monkeypatch):
        monkeypatch.setattr(Config, 'DEBUG', True)
        monkeypatch.setattr(Config, 'LOG_LEVEL', 'warning')

        assert console_level() == logging.WARNING

    def test_unknown_level_name_is_ignored(self, log_config, monkeypatch):
        monkeypatch.setattr(Config, 'LOG_LEVEL', 'chatty')

        assert console_level() == logging.INFO


class TestSetupLogger:

    def test_file_gets_debug_detail_console_does_not(self, log_config):
        logger = setup_logger('scoreboard.tests.detail')
        try:
            console, file_handler = logger.handlers
            assert console.level == logging.INFO
            assert file_handler.level == logging.DEBUG

            logger.debug("token consumed")
            file_handler.flush()

            assert "token consumed" in log_file_path().read_text(encoding='utf-8')
        finally:
            _release(logger)

    def test_loggers_share_one_file_handler(self, log_config):
        first = setup_logger('scoreboard.tests.first')
        second = setup_logger('scoreboard.tests.second')
        try:
            assert first.handlers[1] is second.handlers[1]
        finally:
            _release(first)
            _release(second)

    def test_second_call_returns_configured_logger(self, log_config):
        logger = setup_logger('scoreboard.tests.repeat')
        try:
            assert setup_logger('scoreboard.tests.repeat') is logger
            assert len(logger.handlers) == 2
        finally:
            _release(logger)

    def test_file_logging_can_be_disabled(self, log_config, monkeypatch):
        monkeypatch.setattr(Config, 'LOG_TO_FILE', False)
        logger = setup_logger('scoreboard.tests.console_only')
        try:
            assert len(logger.handlers) == 1
            assert not log_config.exists()
        finally:
            _release(logger)
