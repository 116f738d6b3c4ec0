"""
Diagnostic sink.

The handler writes human-readable trace lines for every decision it abandons
or makes. Traces are append-only and best effort: they go through `logging`,
whose handler errors never propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol

TRACE_LOGGER = "salesteam.trace"


class TracingService(Protocol):
    """Append-only trace capability."""

    def trace(self, message: str) -> None:
        ...


class LoggingTracer:
    """Trace to the `salesteam.trace` logger and keep the lines in memory."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger(TRACE_LOGGER)
        self.level = level
        self.entries: list[str] = []

    def trace(self, message: str) -> None:
        self.entries.append(message)
        self.logger.log(self.level, message)

    def clear(self) -> None:
        self.entries.clear()
