# File: tests/test_logger.py
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest
from site_archiver.logger import configure, init_logging


@pytest.fixture()
def restore_logger():
    yield
    init_logging()


def test_configure_with_log_file(tmp_path, restore_logger):
    log_file = tmp_path / "archiver.log"
    lg = configure(level="DEBUG", log_file=log_file)

    assert lg.level == logging.DEBUG
    assert not lg.propagate
    assert [type(h) for h in lg.handlers] == [logging.StreamHandler, RotatingFileHandler]

    lg.debug("Captured: %s", "https://app.example.com/x.js")
    for handler in lg.handlers:
        handler.flush()
    assert "| DEBUG    | SiteArchiver | Captured: https://app.example.com/x.js" in log_file.read_text()


def test_configure_can_append_handlers(restore_logger):
    lg = init_logging()
    before = len(lg.handlers)
    configure(replace_handlers=False)
    assert len(lg.handlers) == before + 1
