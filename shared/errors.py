"""Domain errors raised by the store, the API layer and the notifier.

The API converts ``MonitorError`` subclasses carrying an HTTP status into
``{"message": ...}`` responses; the rest are handled where they occur.
"""
from __future__ import annotations


class MonitorError(Exception):
    """Base class for all maintenance monitor errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message}


class ValidationError(MonitorError):
    """Required fields are missing from a create request."""

    status_code = 400


class NotFound(MonitorError):
    """The referenced machine does not exist."""

    status_code = 404

    def __init__(self, resource_type: str = "Machine", resource_id: str | None = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found")


class PersistenceError(MonitorError):
    """The JSON store could not be read from disk."""


class NotificationError(MonitorError):
    """A mail transport failed to deliver a message."""
