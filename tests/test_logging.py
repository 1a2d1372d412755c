"""Tests for package logging configuration."""

from __future__ import annotations

import logging
from typing import Iterator

import pytest

from shopassist.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger(logging_utils.PACKAGE_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    httpx_level = logging.getLogger("httpx").level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logging.getLogger("httpx").setLevel(httpx_level)


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_debug_flag_selects_level(restore_package_logger: logging.Logger) -> None:
    logging_utils.configure_logging(debug=True)
    assert restore_package_logger.level == logging.DEBUG

    logging_utils.configure_logging(debug=False)
    assert restore_package_logger.level == logging.INFO


def test_handler_receives_package_records() -> None:
    handler = _ListHandler()

    logging_utils.configure_logging(debug=True, handler=handler)
    logging.getLogger("shopassist.session.test").debug("hello from test")

    assert [record.getMessage() for record in handler.records][-1] == "hello from test"
    assert handler.formatter is not None
    assert handler.level == logging.DEBUG


def test_new_handler_replaces_previous(restore_package_logger: logging.Logger) -> None:
    first, second = _ListHandler(), _ListHandler()

    logging_utils.configure_logging(handler=first)
    logging_utils.configure_logging(handler=second)

    assert first not in restore_package_logger.handlers
    assert second in restore_package_logger.handlers


def test_force_removes_installed_handler(restore_package_logger: logging.Logger) -> None:
    handler = _ListHandler()
    logging_utils.configure_logging(handler=handler)

    logging_utils.configure_logging(force=True)

    assert handler not in restore_package_logger.handlers


def test_httpx_is_quieted_at_debug() -> None:
    logging_utils.configure_logging(debug=True)
    assert logging.getLogger("httpx").level == logging.WARNING
