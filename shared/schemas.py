"""
Data schemas for the fairness engine.
Defines dataclasses for structured data exchange between modules.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime


@dataclass(frozen=True)
class Subject:
    """A single candidate record inside one analysis run."""

    subject_id: str
    protected_attributes: Dict[str, str]
    outcome: Optional[bool] = None
    covariates: Dict[str, float] = field(default_factory=dict)
    label: Optional[bool] = None  # ground truth, e.g. "qualified"
    score: Optional[float] = None  # model score in [0, 1], e.g. match score
    features: Dict[str, float] = field(default_factory=dict)  # qualifications used for similarity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "protected_attributes": dict(self.protected_attributes),
            "outcome": self.outcome,
            "covariates": dict(self.covariates),
            "label": self.label,
            "score": self.score,
            "features": dict(self.features),
        }


@dataclass(frozen=True)
class FairnessContext:
    """Where a batch came from: process type, stage, window and scope."""

    process_type: str = "unspecified"
    process_stage: Optional[str] = None
    time_window: Optional[str] = None
    scope: Optional[str] = None
    process_id: Optional[str] = None
    treatment_covariates: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "process_type": self.process_type,
            "process_stage": self.process_stage,
            "time_window": self.time_window,
            "scope": self.scope,
            "process_id": self.process_id,
            "treatment_covariates": list(self.treatment_covariates) if self.treatment_covariates else None,
        }


@dataclass
class GroupComparison:
    """Per-group values of one quantity for one protected attribute."""

    attribute: str
    group_values: Dict[str, float]
    group_sizes: Dict[str, int]
    max_group: Optional[str]
    min_group: Optional[str]
    max_difference: float
    ratio: Optional[float]
    excluded_groups: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attribute": self.attribute,
            "group_values": self.group_values,
            "group_sizes": self.group_sizes,
            "max_group": self.max_group,
            "min_group": self.min_group,
            "max_difference": self.max_difference,
            "ratio": self.ratio,
            "excluded_groups": self.excluded_groups,
            "details": self.details,
        }


@dataclass
class MetricViolation:
    """A violation flagged by the calculator for one family and attribute."""

    family: str
    attribute: str
    severity: str  # 'moderate', 'major', 'critical' for four-fifths; 'medium'/'high' otherwise
    value: float
    threshold: float
    description: str
    affected_groups: List[str] = field(default_factory=list)
    legal_implications: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "attribute": self.attribute,
            "severity": self.severity,
            "value": self.value,
            "threshold": self.threshold,
            "description": self.description,
            "affected_groups": self.affected_groups,
            "legal_implications": self.legal_implications,
        }


@dataclass
class MetricFamilyResult:
    """Result of one metric family across all protected attributes."""

    family: str
    score: Optional[float]
    evaluable: bool
    basis: str
    comparisons: Dict[str, GroupComparison] = field(default_factory=dict)
    violations: List[MetricViolation] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def scored(self) -> bool:
        """Evaluable and counted in the overall score (proxy results are not)."""
        return self.evaluable and self.basis != "selection_proxy"

    @property
    def worst_difference(self) -> float:
        """Largest max-min gap over evaluated attributes (0.0 if none)."""
        if not self.comparisons:
            return 0.0
        return max(c.max_difference for c in self.comparisons.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "score": self.score,
            "evaluable": self.evaluable,
            "basis": self.basis,
            "scored": self.scored,
            "comparisons": {k: v.to_dict() for k, v in self.comparisons.items()},
            "violations": [v.to_dict() for v in self.violations],
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float
    level: float = 0.95
    method: str = "wald"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lower": self.lower,
            "upper": self.upper,
            "level": self.level,
            "method": self.method,
        }


@dataclass
class SampleSizeInfo:
    """Sample-size metadata attached to every analysis."""

    total: int
    by_group: Dict[str, Dict[str, int]]
    minimum_required: int
    adequacy_score: float
    smallest_group: Optional[int] = None
    low_expected_cells: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_group": self.by_group,
            "minimum_required": self.minimum_required,
            "adequacy_score": self.adequacy_score,
            "smallest_group": self.smallest_group,
            "low_expected_cells": self.low_expected_cells,
        }


@dataclass
class AttributeSignificance:
    """Hypothesis-test summary for the group x outcome table of one attribute."""

    attribute: str
    test_used: str  # 'chi_square', 'fisher_exact' or 'none'
    status: str  # 'ok', 'reduced_confidence' or 'degenerate'
    is_significant: bool = False
    statistic: Optional[float] = None
    degrees_of_freedom: Optional[int] = None
    p_value: Optional[float] = None
    odds_ratio: Optional[float] = None
    odds_ratio_ci: Optional[Tuple[float, float]] = None
    ratio_status: Optional[str] = None
    effect_size: Optional[float] = None  # Cohen's h between extreme groups
    cramers_v: Optional[float] = None
    min_expected_count: Optional[float] = None
    low_expected_cells: int = 0
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attribute": self.attribute,
            "test_used": self.test_used,
            "status": self.status,
            "is_significant": self.is_significant,
            "statistic": self.statistic,
            "degrees_of_freedom": self.degrees_of_freedom,
            "p_value": self.p_value,
            "odds_ratio": self.odds_ratio,
            "odds_ratio_ci": list(self.odds_ratio_ci) if self.odds_ratio_ci else None,
            "ratio_status": self.ratio_status,
            "effect_size": self.effect_size,
            "cramers_v": self.cramers_v,
            "min_expected_count": self.min_expected_count,
            "low_expected_cells": self.low_expected_cells,
            "notes": self.notes,
        }


@dataclass
class IntersectionalSummary:
    """Selection rates for combined protected groups (informational only)."""

    attributes: List[str]
    group_rates: Dict[str, float]
    group_sizes: Dict[str, int]
    parity_ratio: Optional[float]
    excluded_groups: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attributes": self.attributes,
            "group_rates": self.group_rates,
            "group_sizes": self.group_sizes,
            "parity_ratio": self.parity_ratio,
            "excluded_groups": self.excluded_groups,
        }


@dataclass
class AttributeCalibration:
    """Expected calibration error of the score for each group of one attribute."""

    attribute: str
    group_errors: Dict[str, float]
    group_sizes: Dict[str, int]
    max_error: float
    error_difference: float
    score: float  # 1 - max_error
    compliance_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attribute": self.attribute,
            "group_errors": self.group_errors,
            "group_sizes": self.group_sizes,
            "max_error": self.max_error,
            "error_difference": self.error_difference,
            "score": self.score,
            "compliance_status": self.compliance_status,
        }


@dataclass
class CalibrationSummary:
    """Score calibration across protected groups (informational only)."""

    basis: str  # 'ground_truth' or 'outcome'
    attributes: Dict[str, AttributeCalibration]
    score: float
    compliance_status: str
    bins: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "basis": self.basis,
            "attributes": {k: v.to_dict() for k, v in self.attributes.items()},
            "score": self.score,
            "compliance_status": self.compliance_status,
            "bins": self.bins,
        }


@dataclass
class IndividualFairnessSummary:
    """Outcome consistency among nearest neighbours in feature space."""

    consistency: float
    neighbours: int
    features: List[str]
    subjects_evaluated: int
    compliance_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consistency": self.consistency,
            "neighbours": self.neighbours,
            "features": self.features,
            "subjects_evaluated": self.subjects_evaluated,
            "compliance_status": self.compliance_status,
        }


@dataclass
class CounterfactualSummary:
    """Outcome agreement between matched subjects from different groups."""

    attribute_consistency: Dict[str, float]
    matched_pairs: Dict[str, int]
    score: Optional[float]
    max_distance: float
    compliance_status: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attribute_consistency": self.attribute_consistency,
            "matched_pairs": self.matched_pairs,
            "score": self.score,
            "max_distance": self.max_distance,
            "compliance_status": self.compliance_status,
        }


@dataclass
class ValidationStatus:
    is_valid: bool
    confidence: str  # 'high', 'reduced' or 'low'
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "warnings": self.warnings,
        }


@dataclass(frozen=True)
class FairnessMetrics:
    """
    Complete output of one fairness calculation.

    Created once per run and never mutated; re-running yields a new id.
    """

    metrics_id: str
    timestamp: datetime
    context: FairnessContext
    demographic_parity: MetricFamilyResult
    equalized_odds: MetricFamilyResult
    predictive_equality: MetricFamilyResult
    treatment_equality: MetricFamilyResult
    disparate_impact: MetricFamilyResult
    overall_score: float
    confidence_interval: ConfidenceInterval
    sample_size: SampleSizeInfo
    statistical_significance: Dict[str, AttributeSignificance]
    validation: ValidationStatus
    intersectional: Optional[IntersectionalSummary] = None
    calibration: Optional[CalibrationSummary] = None
    individual_fairness: Optional[IndividualFairnessSummary] = None
    counterfactual: Optional[CounterfactualSummary] = None

    def families(self) -> Dict[str, MetricFamilyResult]:
        """Metric families keyed by name, in weighting order."""
        return {
            "demographic_parity": self.demographic_parity,
            "equalized_odds": self.equalized_odds,
            "predictive_equality": self.predictive_equality,
            "treatment_equality": self.treatment_equality,
            "disparate_impact": self.disparate_impact,
        }

    def all_violations(self) -> List[MetricViolation]:
        violations = []
        for family in self.families().values():
            violations.extend(family.violations)
        return violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics_id": self.metrics_id,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict(),
            "families": {k: v.to_dict() for k, v in self.families().items()},
            "overall_score": self.overall_score,
            "confidence_interval": self.confidence_interval.to_dict(),
            "sample_size": self.sample_size.to_dict(),
            "statistical_significance": {
                k: v.to_dict() for k, v in self.statistical_significance.items()
            },
            "intersectional": self.intersectional.to_dict() if self.intersectional else None,
            "calibration": self.calibration.to_dict() if self.calibration else None,
            "individual_fairness": self.individual_fairness.to_dict() if self.individual_fairness else None,
            "counterfactual": self.counterfactual.to_dict() if self.counterfactual else None,
            "validation": self.validation.to_dict(),
        }


@dataclass
class BiasViolation:
    """A threshold breach found while monitoring one process batch."""

    violation_type: str
    severity: str  # 'low', 'medium', 'high', 'critical'
    metric_name: str
    value: float
    threshold: float
    description: str
    timestamp: datetime = field(default_factory=datetime.now)
    attribute: Optional[str] = None
    affected_groups: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violation_type": self.violation_type,
            "severity": self.severity,
            "metric_name": self.metric_name,
            "value": self.value,
            "threshold": self.threshold,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "attribute": self.attribute,
            "affected_groups": self.affected_groups,
        }


@dataclass
class BiasAnalysisResult:
    """Bias analysis of one process batch, before threshold evaluation."""

    overall_bias_score: float
    compliance_status: str  # 'compliant' or 'non_compliant'
    fairness_metrics: Optional[FairnessMetrics]
    subject_count: int
    detected_patterns: List[str] = field(default_factory=list)
    mitigation_recommendations: List[str] = field(default_factory=list)
    threshold_version: Optional[int] = None
    analysis_timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_bias_score": self.overall_bias_score,
            "compliance_status": self.compliance_status,
            "fairness_metrics": self.fairness_metrics.to_dict() if self.fairness_metrics else None,
            "subject_count": self.subject_count,
            "detected_patterns": self.detected_patterns,
            "mitigation_recommendations": self.mitigation_recommendations,
            "threshold_version": self.threshold_version,
            "analysis_timestamp": self.analysis_timestamp.isoformat(),
        }


@dataclass
class BiasMonitoringResult:
    """Result returned to the caller of one monitoring evaluation."""

    monitoring_id: str
    process_id: str
    process_type: str
    bias_analysis: BiasAnalysisResult
    violations: List[BiasViolation]
    compliance_status: str  # 'compliant', 'violation_detected' or 'non_compliant'
    recommendations: List[str]
    processing_time_ms: float
    timestamp: datetime = field(default_factory=datetime.now)
    integrity_warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitoring_id": self.monitoring_id,
            "process_id": self.process_id,
            "process_type": self.process_type,
            "bias_analysis": self.bias_analysis.to_dict(),
            "violations": [v.to_dict() for v in self.violations],
            "compliance_status": self.compliance_status,
            "recommendations": self.recommendations,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp.isoformat(),
            "integrity_warnings": self.integrity_warnings,
        }
