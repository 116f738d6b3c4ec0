"""
Exception hierarchy for the sales team participation ledger.

Soft validation failures are not exceptions: they are traced and the event is
abandoned. Everything here is a hard failure.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "SalesTeamError",
    "PluginExecutionError",
    "StoreError",
    "RecordNotFoundError",
    "ConfigError",
    "EventFormatError",
]


class SalesTeamError(Exception):
    """Base exception for all salesteam errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for CLI JSON output."""
        result: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class PluginExecutionError(SalesTeamError):
    """Fatal per-event error raised to the host by the dispatcher."""


class StoreError(SalesTeamError):
    """A record store operation failed."""


class RecordNotFoundError(StoreError):
    """retrieve() found no record with the requested id."""

    def __init__(self, logical_name: str, record_id: Any) -> None:
        super().__init__(
            f"{logical_name} with id {record_id} does not exist",
            {"logical_name": logical_name, "id": str(record_id)},
        )
        self.logical_name = logical_name
        self.record_id = record_id


class ConfigError(SalesTeamError):
    """Configuration could not be loaded or is invalid."""


class EventFormatError(SalesTeamError):
    """An event document could not be parsed into an ExecutionContext."""
