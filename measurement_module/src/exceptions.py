"""
Custom Exceptions - Error handling for the Measurement Module.

Input problems are ValidationError subclasses (also ValueErrors) so callers
can fail fast on bad batches; computation problems derive from
FairnessModuleError.
"""

from shared.validation import (
    ValidationError,
    LengthMismatchError,
    InsufficientSampleSizeError,
    MissingProtectedAttributeError,
    MetricValidationError,
)


class FairnessModuleError(Exception):
    """Base exception for fairness computation errors."""
    pass


class InsufficientSampleError(ValidationError):
    """
    Raised when a two-sample test receives fewer than two observations.

    Example:
        >>> if len(sample_a) < 2:
        ...     raise InsufficientSampleError("sample_a needs at least 2 values")
    """
    pass


class DegenerateTableError(ValidationError):
    """
    Raised when a contingency table cannot support a test.

    Common causes:
    - All cells are zero
    - Only one group (row) or one outcome category (column)
    - A row or column total of zero, which makes expected counts vanish
    """
    pass


class DegenerateSampleError(ValidationError):
    """Raised when both samples have zero variance, leaving no standard error."""
    pass


class InsufficientDataError(FairnessModuleError):
    """
    Raised when no metric family can be evaluated on a batch.

    Example:
        >>> if not any(f.evaluable for f in families):
        ...     raise InsufficientDataError(
        ...         "No protected attribute has two or more groups"
        ...     )
    """
    pass


class MetricComputationError(FairnessModuleError):
    """
    Raised when metric computation fails.

    This could be due to numerical issues or incompatible data.
    """
    pass


class ConfigurationError(FairnessModuleError):
    """
    Raised when configuration parameters are invalid or incompatible.

    Example:
        >>> if not 0 < confidence_level < 1:
        ...     raise ConfigurationError("confidence_level must be in (0, 1)")
    """
    pass


__all__ = [
    "FairnessModuleError",
    "ValidationError",
    "LengthMismatchError",
    "InsufficientSampleSizeError",
    "MissingProtectedAttributeError",
    "MetricValidationError",
    "InsufficientSampleError",
    "DegenerateTableError",
    "DegenerateSampleError",
    "InsufficientDataError",
    "MetricComputationError",
    "ConfigurationError",
]
