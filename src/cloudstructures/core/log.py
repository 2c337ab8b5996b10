# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Logging capability injected into table structures.

A structure reports operation outcomes through a :class:`StructureLogger`.
When none is supplied, messages go to a console sink built on the standard
:mod:`logging` module. Reporting is fire-and-forget: a failing sink never
breaks the operation being reported.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Protocol, runtime_checkable

CONSOLE_LOGGER_NAME = "cloudstructures.console"


@runtime_checkable
class StructureLogger(Protocol):
    """Protocol for sinks that receive structure operation outcomes."""

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class StdlibLogger:
    """
    Adapt a :class:`logging.Logger` to :class:`StructureLogger`.

    :param logger: Logger instance or logger name.
    :type logger: logging.Logger or str
    """

    def __init__(self, logger: "logging.Logger | str") -> None:
        self._logger = logging.getLogger(logger) if isinstance(logger, str) else logger

    def info(self, message: str) -> None:
        self._logger.info(message)

    def error(self, message: str) -> None:
        self._logger.error(message)


class ConsoleLogger(StdlibLogger):
    """Local console sink used when no logger is configured."""

    def __init__(self) -> None:
        logger = logging.getLogger(CONSOLE_LOGGER_NAME)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
            logger.propagate = False
        super().__init__(logger)


class SafeLogger:
    """
    Wrap a sink so reporting can be silenced and never raises.

    :param logger: Sink to forward to; ``None`` selects :class:`ConsoleLogger`.
    :type logger: StructureLogger or None
    :param disabled: Drop every message when True.
    :type disabled: bool
    """

    def __init__(self, logger: Optional[StructureLogger] = None, *, disabled: bool = False) -> None:
        self._sink: StructureLogger = logger if logger is not None else ConsoleLogger()
        self.disabled = disabled

    @property
    def sink(self) -> StructureLogger:
        return self._sink

    def info(self, message: str) -> None:
        if self.disabled:
            return
        try:
            self._sink.info(message)
        except Exception:
            pass  # Logging must not break structure operations

    def error(self, message: str) -> None:
        if self.disabled:
            return
        try:
            self._sink.error(message)
        except Exception:
            pass


__all__ = ["StructureLogger", "StdlibLogger", "ConsoleLogger", "SafeLogger", "CONSOLE_LOGGER_NAME"]
