"""Logging helpers for hosts embedding the shopassist session engine."""

from __future__ import annotations

import logging

__all__ = ["configure_logging", "PACKAGE_LOGGER"]

PACKAGE_LOGGER = "shopassist"
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    debug: bool = False,
    *,
    handler: logging.Handler | None = None,
    force: bool = False,
) -> logging.Logger:
    """Route the package's log records to ``handler`` at INFO, or DEBUG when ``debug``.

    Only the ``shopassist`` logger is touched; the host's root configuration
    is left alone. Without a handler, records propagate to the host's
    handlers. A new ``handler`` replaces the one installed by an earlier
    call; ``force`` removes it without installing another.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    if handler is not None or force:
        for item in _installed_handlers(logger):
            logger.removeHandler(item)
    if handler is not None:
        if handler.formatter is None:
            handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT))
        handler._shopassist = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    for item in _installed_handlers(logger):
        item.setLevel(level)

    _tune_external_loggers(level)
    logger.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return logger


def _installed_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [item for item in logger.handlers if getattr(item, "_shopassist", False)]


def _tune_external_loggers(level: int) -> None:
    # Wire-level httpx chatter drowns out stream diagnostics at DEBUG.
    quiet_level = logging.WARNING if level < logging.WARNING else level
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
