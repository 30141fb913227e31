"""Custom exceptions for the calendar scheduler."""


class CalendarSchedulerError(Exception):
    """Base exception for calendar scheduler errors."""


class ConfigurationError(CalendarSchedulerError):
    """Raised when configuration is invalid."""


class ValidationError(CalendarSchedulerError):
    """Raised when caller input is rejected before a write is sent."""


class RecurrenceRuleError(ValidationError):
    """Raised when a recurrence rule string cannot be parsed."""


class EditScopeRequiredError(ValidationError):
    """Raised when a recurring event is edited without a resolved scope."""


class TransportError(CalendarSchedulerError):
    """Raised when a request to the calendar service fails. Retryable."""


class CalendarReadError(TransportError):
    """Raised when reading calendar data fails."""


class CalendarWriteError(TransportError):
    """Raised when writing calendar data fails."""


class AuthenticationError(CalendarSchedulerError):
    """Raised when no usable credentials are available."""


class InterchangeError(CalendarSchedulerError):
    """Raised when an interchange file cannot be read or written."""
