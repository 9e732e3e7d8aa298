"""
Scheduling conditions surfaced to callers.

None of these represent programming errors: the API layer turns each one
into a specific response so the client can stay on the current step and
show the reason.
"""

from typing import Any


class SchedulingError(Exception):
    """Base class for recoverable scheduling conditions."""

    reason = "scheduling_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidWindowFormat(SchedulingError, ValueError):
    reason = "invalid_window_format"


class OverlapRejected(SchedulingError):
    """A window or booking conflicts with one that already exists."""

    reason = "overlap"

    def __init__(self, message: str, conflict: Any = None) -> None:
        super().__init__(message)
        self.conflict = conflict


class DuplicateActiveBooking(SchedulingError):
    """The applicant already holds a future active booking with this interviewer."""

    reason = "duplicate_active_booking"

    def __init__(self, message: str, existing: Any = None) -> None:
        super().__init__(message)
        self.existing = existing


class NotFound(SchedulingError):
    reason = "not_found"


class DataUnavailable(SchedulingError):
    """The document store could not serve a read or write."""

    reason = "data_unavailable"
