"""Error kinds raised by the store, the records and the image store."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Validation error codes."""

    INVALID_FIELD = "INVALID_FIELD"
    INVALID_DATE = "INVALID_DATE"
    INVALID_TIME = "INVALID_TIME"
    INVALID_EMAIL = "INVALID_EMAIL"
    DUPLICATE_SLUG = "DUPLICATE_SLUG"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"


class EventHubError(Exception):
    """Base class for every error this package raises on purpose."""


class ConfigurationError(EventHubError):
    """Required configuration is missing or malformed."""


class StoreConnectionError(EventHubError):
    """The document store could not be reached or the handle is closed."""


class UploadError(EventHubError):
    """The image store rejected or failed an upload."""


class ValidationError(EventHubError):
    """Caller input broke a record invariant."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


def invalid_field(message: str) -> ValidationError:
    return ValidationError(ErrorCode.INVALID_FIELD, message)


def event_not_found() -> ValidationError:
    return ValidationError(ErrorCode.EVENT_NOT_FOUND, "Referenced event does not exist")
