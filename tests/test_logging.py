"""
Tests for logging setup — levels, formats, and file output.
"""

import logging
from pathlib import Path

import pytest

from hostprep.core.observability.logging_config import parse_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParseLevel:
    def test_names(self):
        assert parse_level("debug") == logging.DEBUG
        assert parse_level("ERROR") == logging.ERROR

    def test_defaults_to_warning(self):
        assert parse_level(None) == logging.WARNING
        assert parse_level("") == logging.WARNING
        assert parse_level("chatty") == logging.WARNING


class TestSetupLogging:
    def test_console_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler_lowers_root_level(self, tmp_path: Path):
        log_file = tmp_path / "hostprep.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        logging.getLogger("hostprep.test").debug("into the file")
        for handler in root.handlers:
            handler.flush()
        assert "into the file" in log_file.read_text()

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging("INFO")
        setup_logging("DEBUG")
        assert len(logging.getLogger().handlers) == 1

    def test_file_directory_created(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "nested" / "hostprep.log"
        setup_logging("INFO", log_file=str(log_file))
        logging.getLogger("hostprep.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert log_file.read_text().strip().endswith("hello")
