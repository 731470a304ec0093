"""Levelled logger writing formatted lines to a stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TextIO

_NOTICE = 25

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "NOTICE": _NOTICE,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_MODULE = "GW"
_DATE_FORMAT = "%Y/%m/%d - %H:%M:%S"


def _join(args: tuple[Any, ...]) -> str:
    return " ".join(str(arg) for arg in args)


@dataclass(frozen=True)
class GatewayLogger:
    """Logger accepting any number of values per message."""

    logger: logging.Logger

    def debug(self, *args: Any) -> None:
        self.logger.debug(_join(args))

    def info(self, *args: Any) -> None:
        self.logger.info(_join(args))

    def warning(self, *args: Any) -> None:
        self.logger.warning(_join(args))

    def error(self, *args: Any) -> None:
        self.logger.error(_join(args))

    def critical(self, *args: Any) -> None:
        self.logger.critical(_join(args))

    def fatal(self, *args: Any) -> None:
        """Log at critical level, then exit with status 1."""
        self.logger.critical(_join(args))
        raise SystemExit(1)


def new_logger(level: str, out: TextIO, prefix: str) -> GatewayLogger:
    """Build a logger writing to ``out``; ``level`` is matched case-insensitively."""
    log_level = _LEVELS.get(level.upper())
    if log_level is None:
        message = "logger: invalid log level"
        print("ERROR:", message, file=out)
        raise ValueError(message)

    handler = logging.StreamHandler(out)
    handler.setFormatter(
        logging.Formatter(
            prefix.replace("%", "%%")
            + "%(asctime)s.%(msecs)03d ▶ %(levelname).6s %(message)s",
            datefmt=_DATE_FORMAT,
        )
    )
    logger = logging.Logger(_MODULE, level=log_level)
    logger.propagate = False
    logger.addHandler(handler)
    return GatewayLogger(logger)