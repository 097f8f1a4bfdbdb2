"""Tests for logging setup."""

import logging

import pytest

from changegov.core.config import Settings
from changegov.core.logger import configure_logging, setup_logger


@pytest.fixture
def logger_name(request):
    name = f"changegov.test.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestSetupLogger:

    def test_console_handler(self, logger_name):
        logger = setup_logger(logger_name, level="debug")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_file_handler_writes_iso_timestamps(self, logger_name, tmp_path):
        logger = setup_logger(logger_name, log_dir=str(tmp_path), file_logging=True, console_logging=False)
        logger.info("chain built")
        for handler in logger.handlers:
            handler.flush()

        content = (tmp_path / f"{logger_name}.log").read_text()
        assert "[INFO]" in content
        assert "chain built" in content
        assert "T" in content.split(" ")[0]

    def test_invalid_level(self, logger_name):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger(logger_name, level="LOUD")

    def test_no_duplicate_handlers(self, logger_name):
        setup_logger(logger_name)
        logger = setup_logger(logger_name)
        assert len(logger.handlers) == 1


@pytest.fixture
def restore_levels():
    names = ("changegov", "sqlalchemy.engine", "uvicorn.access")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


@pytest.mark.usefixtures("restore_levels")
class TestConfigureLogging:

    def test_uses_settings(self):
        logger = configure_logging(Settings(_env_file=None, log_level="warning", debug=False))
        assert logger.name == "changegov"
        assert logger.level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_debug_lets_sql_through(self):
        configure_logging(Settings(_env_file=None, debug=True))
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
