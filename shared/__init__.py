"""
Shared utilities for the fairness engine.

Provides common schemas, constants, logging, and validation
used across the measurement and monitoring modules.
"""

from shared.schemas import (
    Subject,
    FairnessContext,
    GroupComparison,
    MetricViolation,
    MetricFamilyResult,
    ConfidenceInterval,
    SampleSizeInfo,
    AttributeSignificance,
    IntersectionalSummary,
    ValidationStatus,
    FairnessMetrics,
    BiasViolation,
    BiasAnalysisResult,
    BiasMonitoringResult,
)

from shared.constants import (
    FAIRNESS_METRICS,
    FAIRNESS_WEIGHTS,
    FOUR_FIFTHS_THRESHOLD,
    DEFAULT_CONFIDENCE_LEVEL,
    MIN_SAMPLE_SIZE,
    MIN_GROUP_SIZE,
    DEFAULT_THRESHOLDS,
    PROCESS_TYPES,
    SEVERITY_LEVELS,
    TIME_RANGES,
    REPORT_TYPES,
    MONITORING_DEFAULTS,
)

from shared.logging import (
    get_logger,
    setup_logger,
    log_score,
    log_family_result,
    log_violation,
    log_alert,
    log_validation,
    StageTimer,
)

from shared.validation import (
    ValidationError,
    LengthMismatchError,
    InsufficientSampleSizeError,
    MissingProtectedAttributeError,
    MetricValidationError,
    validate_equal_length,
    validate_sample_size,
    validate_binary_outcomes,
    validate_protected_attributes,
    validate_unit_interval,
    validate_confidence_interval,
    safe_divide,
)

__version__ = "0.1.0"
__author__ = "FairML Consulting"

__all__ = [
    # Schemas
    "Subject",
    "FairnessContext",
    "GroupComparison",
    "MetricViolation",
    "MetricFamilyResult",
    "ConfidenceInterval",
    "SampleSizeInfo",
    "AttributeSignificance",
    "IntersectionalSummary",
    "ValidationStatus",
    "FairnessMetrics",
    "BiasViolation",
    "BiasAnalysisResult",
    "BiasMonitoringResult",
    # Constants
    "FAIRNESS_METRICS",
    "FAIRNESS_WEIGHTS",
    "FOUR_FIFTHS_THRESHOLD",
    "DEFAULT_CONFIDENCE_LEVEL",
    "MIN_SAMPLE_SIZE",
    "MIN_GROUP_SIZE",
    "DEFAULT_THRESHOLDS",
    "PROCESS_TYPES",
    "SEVERITY_LEVELS",
    "TIME_RANGES",
    "REPORT_TYPES",
    "MONITORING_DEFAULTS",
    # Logging
    "get_logger",
    "setup_logger",
    "log_score",
    "log_family_result",
    "log_violation",
    "log_alert",
    "log_validation",
    "StageTimer",
    # Validation
    "ValidationError",
    "LengthMismatchError",
    "InsufficientSampleSizeError",
    "MissingProtectedAttributeError",
    "MetricValidationError",
    "validate_equal_length",
    "validate_sample_size",
    "validate_binary_outcomes",
    "validate_protected_attributes",
    "validate_unit_interval",
    "validate_confidence_interval",
    "safe_divide",
]
