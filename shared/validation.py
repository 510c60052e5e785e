"""
Validation utilities for the fairness engine.
Input validation for subject batches and sanity checks on computed scores.
"""

import math
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from shared.constants import MIN_SAMPLE_SIZE, SEVERITY_LEVELS


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


class LengthMismatchError(ValidationError):
    """Raised when parallel input sequences differ in length."""
    pass


class InsufficientSampleSizeError(ValidationError):
    """
    Raised when a batch is too small for a fairness analysis.

    Example:
        >>> if len(subjects) < MIN_SAMPLE_SIZE:
        ...     raise InsufficientSampleSizeError(
        ...         f"Sample size {len(subjects)} is below minimum {MIN_SAMPLE_SIZE}"
        ...     )
    """

    def __init__(self, message: str, sample_size: int = 0, minimum: int = MIN_SAMPLE_SIZE):
        super().__init__(message)
        self.sample_size = sample_size
        self.minimum = minimum


class MissingProtectedAttributeError(ValidationError):
    """Raised when a subject lacks a requested protected attribute."""
    pass


class MetricValidationError(ValidationError):
    """
    Raised when a computed sub-score falls outside [0, 1].

    This always indicates a defect in the computation, never bad input.
    """
    pass


def validate_equal_length(first: Sequence, second: Sequence, names: Tuple[str, str] = ("subjects", "outcomes")) -> None:
    """
    Validate that two sequences have the same length.

    Raises:
        LengthMismatchError: If lengths differ
    """
    if len(first) != len(second):
        raise LengthMismatchError(
            f"{names[0]} and {names[1]} must have the same length: "
            f"{len(first)} != {len(second)}"
        )


def validate_sample_size(sample_size: int, minimum: int = MIN_SAMPLE_SIZE) -> None:
    """
    Validate the total number of subjects in an analysis.

    Raises:
        InsufficientSampleSizeError: If sample_size < minimum
    """
    if sample_size < minimum:
        raise InsufficientSampleSizeError(
            f"Sample size {sample_size} is below the minimum of {minimum} "
            f"required for fairness analysis",
            sample_size=sample_size,
            minimum=minimum,
        )


def validate_binary_outcomes(outcomes: Iterable[Any]) -> np.ndarray:
    """
    Validate outcomes and return them as a boolean array.

    Accepts bools and 0/1 integers.

    Raises:
        ValidationError: If any outcome is not binary
    """
    values = list(outcomes)
    invalid = [v for v in values if v not in (True, False)]
    if invalid:
        raise ValidationError(
            f"Outcomes must be boolean; found {len(invalid)} invalid values "
            f"(e.g. {invalid[0]!r})"
        )
    return np.asarray(values, dtype=bool)


def validate_protected_attributes(subjects: Sequence[Any], attributes: Sequence[str]) -> None:
    """
    Validate that every subject carries every protected attribute.

    Args:
        subjects: Objects exposing a ``protected_attributes`` mapping
        attributes: Attribute names required for the analysis

    Raises:
        ValidationError: If no attributes are requested
        MissingProtectedAttributeError: If any subject lacks an attribute
    """
    if not attributes:
        raise ValidationError("At least one protected attribute is required")

    for attribute in attributes:
        missing = [
            s.subject_id for s in subjects
            if s.protected_attributes.get(attribute) in (None, "")
        ]
        if missing:
            preview = ", ".join(str(m) for m in missing[:5])
            raise MissingProtectedAttributeError(
                f"Protected attribute '{attribute}' missing on {len(missing)} "
                f"subject(s): {preview}"
            )


def validate_unit_interval(value: Optional[float], name: str) -> None:
    """
    Check that a computed score lies in [0, 1].

    None is allowed and means "not evaluable".

    Raises:
        MetricValidationError: If value is NaN, infinite, or outside [0, 1]
    """
    if value is None:
        return
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise MetricValidationError(f"{name}={value!r} is outside [0, 1]")


def validate_severity(severity: str) -> None:
    """Validate an alert severity label."""
    if severity not in SEVERITY_LEVELS:
        raise ValidationError(
            f"Unknown severity '{severity}'. Choose from: {SEVERITY_LEVELS}"
        )


def validate_confidence_interval(
    ci: Tuple[float, float],
    point_estimate: Optional[float] = None,
) -> List[str]:
    """
    Check a confidence interval for internal consistency.

    Returns:
        List of problems (empty if consistent)
    """
    problems = []
    lower, upper = ci

    if lower > upper:
        problems.append(f"Lower bound {lower} exceeds upper bound {upper}")

    if point_estimate is not None and not (lower <= point_estimate <= upper):
        problems.append(
            f"Point estimate {point_estimate} outside interval [{lower}, {upper}]"
        )

    return problems


def safe_divide(
    numerator: float,
    denominator: float,
    default: Optional[float] = 0.0,
) -> Optional[float]:
    """
    Divide, returning default when the denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Value to return if denominator is zero

    Returns:
        numerator / denominator or default
    """
    if denominator == 0:
        return default
    return numerator / denominator
