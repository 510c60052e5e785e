"""
Custom Exceptions - Error handling for the Monitoring Module.
"""

from shared.validation import ValidationError


class MonitoringError(Exception):
    """Base exception for monitoring orchestration errors."""
    pass


class PersistenceError(MonitoringError):
    """
    Raised when the alert store or audit trail cannot be written.

    Treated as transient: writes are retried with backoff before an
    integrity warning is raised.
    """
    pass


class AlertStateError(MonitoringError):
    """
    Raised on an invalid alert lifecycle transition.

    Example:
        >>> if alert.status == AlertStatus.RESOLVED:
        ...     raise AlertStateError(f"Alert {alert.alert_id} is already resolved")
    """
    pass


class AlertNotFoundError(MonitoringError, KeyError):
    """Raised when an alert id is unknown."""
    pass


class UnsupportedProcessTypeError(ValidationError):
    """Raised when a batch names a process type without an extraction rule."""
    pass


class UnsupportedReportTypeError(ValidationError):
    """Raised when a report type is not one of REPORT_TYPES."""
    pass


class InvalidTimeRangeError(ValidationError):
    """Raised when a time range is not one of TIME_RANGES."""
    pass


# Errors retried by the persistence layer
TRANSIENT_ERRORS = (PersistenceError, ConnectionError, TimeoutError)
