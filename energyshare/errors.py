"""
Error tags and service-layer exceptions.

Actions report failures to callers with one of the closed set of
:class:`ErrorTag` values. Service functions raise the exceptions below;
actions catch them at the boundary and convert them into result dicts.

CHANGELOG:
- 2026-09-30: Initial creation (STORY-104)

TODO:
- None
"""

from enum import Enum


class ErrorTag(str, Enum):
    """Error classification surfaced in action results."""

    UNAUTHORIZED = "Unauthorized"
    VALIDATION = "Validation Error"
    NOT_FOUND = "Not Found"
    FORBIDDEN = "Forbidden"
    SERVER = "Server Error"


class DeviceOperationError(Exception):
    """A turn-on or turn-off operation failed and was rolled back."""


class DeviceNotActiveError(DeviceOperationError):
    """Turn-off was requested for a device without an open usage session."""


class ReadingSourceError(Exception):
    """A consumption reading could not be obtained from a device."""


def describe_error(exc: BaseException, fallback: str = "Unknown error") -> str:
    """Return the message carried by *exc*, or *fallback* when it has none."""
    message = str(exc)
    return message if message else fallback
