"""Tests for logging configuration."""
import logging
from logging.handlers import TimedRotatingFileHandler

from phrasecards.config import settings
from phrasecards.logging_config import setup_logging


def test_setup_logging_console_only(monkeypatch):
    """Only a console handler is installed without a log directory."""
    monkeypatch.setattr(settings.logging, "dir", None)

    setup_logging("Starting", level="WARNING")

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_setup_logging_with_file(tmp_path, monkeypatch):
    """A rotating file handler is added when a log directory is set."""
    monkeypatch.setattr(settings.logging, "dir", str(tmp_path / "logs"))

    setup_logging(level=logging.DEBUG)

    root = logging.getLogger()
    file_handlers = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]
    assert len(file_handlers) == 1
    assert (tmp_path / "logs" / "phrasecards.log").exists()
    file_handlers[0].close()
    root.removeHandler(file_handlers[0])
