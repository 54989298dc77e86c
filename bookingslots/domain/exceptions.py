"""
Domain-specific exception hierarchy for the booking core.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(SchedulingError, ValueError):
    """Raised for invalid engine input such as a non-positive slot length."""


class NotFoundError(SchedulingError):
    """Raised when a provider, service, booking or schedule does not exist."""


class UnavailableError(SchedulingError):
    """Raised when a date has no working windows or its booking cap is reached."""


class OutOfScheduleError(SchedulingError):
    """Raised when a requested time falls outside every working window."""


class ConflictError(SchedulingError):
    """Raised when a requested time overlaps an existing booking."""


class PastTimeError(SchedulingError):
    """Raised when a requested date/time is not in the future."""


class AlreadyTerminalError(SchedulingError):
    """Raised when cancelling (or moving) a booking that is already cancelled."""


class CalendarSyncError(SchedulingError):
    """Raised when the external calendar cannot be reached or rejects a request."""
