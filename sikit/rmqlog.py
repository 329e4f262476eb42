"""Levelled logging for the message-queue helpers and identifier generation."""

from __future__ import annotations

import logging
import sys
import uuid
from enum import IntEnum
from typing import Any, Protocol


class LogLevel(IntEnum):
    DEBUG = -1
    INFO = 0
    WARN = 1
    ERROR = 2
    FATAL = 3
    PANIC = 4
    IGNORE = 5


class Logger(Protocol):
    def debug(self, msg: str, *args: Any) -> None: ...

    def info(self, msg: str, *args: Any) -> None: ...

    def warn(self, msg: str, *args: Any) -> None: ...

    def error(self, msg: str, *args: Any) -> None: ...

    def fatal(self, msg: str, *args: Any) -> None: ...

    def panic(self, msg: str, *args: Any) -> None: ...


def _format_operand(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    return str(value)


def _sprint(*operands: Any) -> str:
    """Join operands, adding a space between two neighbours that are not strings."""
    parts: list[str] = []
    previous: Any = None
    for index, operand in enumerate(operands):
        if index and not isinstance(operand, str) and not isinstance(previous, str):
            parts.append(" ")
        parts.append(operand if isinstance(operand, str) else _format_operand(operand))
        previous = operand
    return "".join(parts)


class DefaultLogger:
    """Writes ``[level] message`` lines to a standard library logger."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def _emit(self, level: LogLevel, std_level: int, tag: str, msg: str, args: tuple) -> None:
        if _level > level:
            return
        self.logger.log(std_level, "%s", f"[{tag}] " + _sprint(msg, *args))

    def debug(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.DEBUG, logging.DEBUG, "debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.INFO, logging.INFO, "info", msg, args)

    def warn(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.WARN, logging.WARNING, "warn", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.ERROR, logging.ERROR, "error", msg, args)

    def fatal(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.FATAL, logging.CRITICAL, "fatal", msg, args)

    def panic(self, msg: str, *args: Any) -> None:
        self._emit(LogLevel.PANIC, logging.CRITICAL, "panic", msg, args)


def _stdout_logger() -> logging.Logger:
    logger = logging.getLogger("sikit.rmq")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s.%(msecs)03d %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
    return logger


_level: LogLevel = LogLevel.DEBUG
_logger: Logger = DefaultLogger(_stdout_logger())


def set_level(level: LogLevel) -> None:
    """Set the lowest level that is written."""
    global _level
    _level = LogLevel(level)


def get_level() -> LogLevel:
    """Return the lowest level that is written."""
    return _level


def set_logger(logger: Logger) -> None:
    """Replace the logger used by the module-level functions."""
    global _logger
    _logger = logger


def _format(msg: str, args: tuple) -> str:
    return msg % args if args else msg


def debug(msg: str, *args: Any) -> None:
    _logger.debug(_format(msg, args))


def info(msg: str, *args: Any) -> None:
    _logger.info(_format(msg, args))


def warn(msg: str, *args: Any) -> None:
    _logger.warn(_format(msg, args))


def error(msg: str, *args: Any) -> None:
    _logger.error(_format(msg, args))


def generate_id() -> str:
    """Return a new random UUID string."""
    return str(uuid.uuid4())