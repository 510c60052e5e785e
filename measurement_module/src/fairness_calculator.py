"""
Fairness Metrics Calculator - Main orchestrator for fairness measurement.

Turns a batch of subjects with protected attributes and binary outcomes
into an immutable FairnessMetrics record: the five metric families, a
weighted overall score with a Wald confidence interval, per-attribute
hypothesis tests, sample-size metadata and a validation status.

When subjects carry scores or qualification features, calibration,
individual and counterfactual fairness are reported alongside; they are
informational and never weighted into the overall score.

Author: FairML Consulting
Date: January 2026
"""

import math
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from shared.constants import (
    DEFAULT_CONFIDENCE_LEVEL,
    FAIRNESS_METRICS,
    FAIRNESS_WEIGHTS,
    FAMILY_DIFFERENCE_THRESHOLDS,
    FOUR_FIFTHS_THRESHOLD,
    MIN_GROUP_SIZE,
    MIN_SAMPLE_SIZE,
)
from shared.logging import StageTimer, get_logger, log_family_result, log_violation
from shared.schemas import (
    AttributeSignificance,
    CalibrationSummary,
    ConfidenceInterval,
    CounterfactualSummary,
    FairnessContext,
    FairnessMetrics,
    IndividualFairnessSummary,
    MetricFamilyResult,
    SampleSizeInfo,
    Subject,
    ValidationStatus,
)
from shared.validation import (
    validate_binary_outcomes,
    validate_confidence_interval,
    validate_equal_length,
    validate_protected_attributes,
    validate_sample_size,
    validate_unit_interval,
)
from measurement_module.src.calibration import score_calibration
from measurement_module.src.distributions import two_sided_z_critical
from measurement_module.src.exceptions import (
    ConfigurationError,
    DegenerateTableError,
    InsufficientDataError,
)
from measurement_module.src.individual_fairness import consistency_score, counterfactual_consistency
from measurement_module.src.metrics_engine import (
    demographic_parity,
    disparate_impact,
    equalized_odds,
    intersectional_parity,
    predictive_equality,
    treatment_equality,
)
from measurement_module.src.statistical_tests import (
    ContingencyTable,
    chi_square_test,
    cohens_h,
    cramers_v,
    fisher_exact_test,
)

logger = get_logger(__name__)

RATIO_FAMILIES = ("demographic_parity", "disparate_impact")


class FairnessMetricsCalculator:
    """
    Compute fairness metrics for one batch of hiring outcomes.

    The calculator holds only configuration, so one instance can serve
    concurrent evaluations.

    Example:
        >>> calculator = FairnessMetricsCalculator()
        >>> metrics = calculator.calculate_fairness_metrics(
        ...     subjects, outcomes, ["gender"],
        ...     FairnessContext(process_type="hiring_decision"),
        ... )
        >>> print(f"{metrics.overall_score:.3f}")
    """

    def __init__(
        self,
        confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
        min_sample_size: int = MIN_SAMPLE_SIZE,
        min_group_size: int = MIN_GROUP_SIZE,
        weights: Optional[Dict[str, float]] = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize calculator.

        Args:
            confidence_level: Coverage of the overall-score interval
            min_sample_size: Smallest batch accepted for analysis
            min_group_size: Groups below this size reduce confidence
            weights: Family weights (must cover all five families, sum to 1)
            clock: Source of the result timestamp
            id_factory: Source of result ids
        """
        if not 0 < confidence_level < 1:
            raise ConfigurationError("confidence_level must be in (0, 1)")

        weights = dict(weights or FAIRNESS_WEIGHTS)
        if set(weights) != set(FAIRNESS_WEIGHTS):
            raise ConfigurationError(
                f"weights must cover exactly {sorted(FAIRNESS_WEIGHTS)}"
            )
        if not math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9):
            raise ConfigurationError(f"weights must sum to 1, got {sum(weights.values())}")

        self.confidence_level = confidence_level
        self.min_sample_size = min_sample_size
        self.min_group_size = min_group_size
        self.weights = weights
        self.clock = clock
        self.id_factory = id_factory

        logger.info(
            f"Initialized FairnessMetricsCalculator "
            f"(confidence={confidence_level}, min_sample={min_sample_size})"
        )

    def calculate_fairness_metrics(
        self,
        subjects: Sequence[Subject],
        outcomes: Sequence[bool],
        protected_attributes: Sequence[str],
        context: Optional[FairnessContext] = None,
    ) -> FairnessMetrics:
        """
        Compute all metric families for a batch.

        Args:
            subjects: Subjects with protected attributes (and optional
                covariates / ground-truth labels)
            outcomes: Boolean outcome per subject, aligned with subjects
            protected_attributes: Attribute names to analyse
            context: Process context recorded on the result

        Returns:
            FairnessMetrics

        Raises:
            LengthMismatchError: subjects and outcomes differ in length
            InsufficientSampleSizeError: fewer than min_sample_size subjects
            MissingProtectedAttributeError: attribute missing on a subject
            InsufficientDataError: no family could be evaluated
            MetricValidationError: a computed score left [0, 1]
        """
        context = context or FairnessContext()
        validate_equal_length(subjects, outcomes)
        validate_sample_size(len(subjects), self.min_sample_size)
        attributes = sorted(set(protected_attributes))
        validate_protected_attributes(subjects, attributes)
        outcome_array = validate_binary_outcomes(outcomes)

        warnings: List[str] = []
        attribute_groups = {
            a: np.asarray([str(s.protected_attributes[a]) for s in subjects])
            for a in attributes
        }
        labels = self._collect_labels(subjects, warnings)
        covariates = self._collect_covariates(subjects, context, warnings)

        with StageTimer(logger, "fairness_metrics", process_type=context.process_type, subjects=len(subjects)):
            families = {
                "demographic_parity": demographic_parity(attribute_groups, outcome_array),
                "equalized_odds": equalized_odds(attribute_groups, outcome_array, labels),
                "predictive_equality": predictive_equality(attribute_groups, outcome_array, labels),
                "treatment_equality": treatment_equality(
                    attribute_groups, outcome_array, labels, covariates
                ),
                "disparate_impact": disparate_impact(attribute_groups, outcome_array),
            }

            if not any(f.scored for f in families.values()):
                raise InsufficientDataError(
                    "No metric family could be evaluated: every protected attribute "
                    "has fewer than two groups"
                )

            for name, family in families.items():
                validate_unit_interval(family.score, f"{name}.score")

            overall = self._overall_score(families)
            validate_unit_interval(overall, "overall_score")
            interval = self._wald_interval(overall, len(subjects))
            warnings.extend(validate_confidence_interval((interval.lower, interval.upper), overall))

            significance = {
                a: self._attribute_significance(a, attribute_groups[a], outcome_array)
                for a in attributes
            }
            sample_size = self._sample_size_info(attribute_groups, significance)
            intersectional = intersectional_parity(attribute_groups, outcome_array)
            calibration = self._calibration(subjects, attribute_groups, outcome_array, labels, warnings)
            individual, counterfactual = self._individual_fairness(
                subjects, attribute_groups, outcome_array, warnings
            )
            validation = self._validation_status(families, sample_size, significance, warnings)

        metrics = FairnessMetrics(
            metrics_id=self.id_factory(),
            timestamp=self.clock(),
            context=context,
            overall_score=overall,
            confidence_interval=interval,
            sample_size=sample_size,
            statistical_significance=significance,
            validation=validation,
            intersectional=intersectional,
            calibration=calibration,
            individual_fairness=individual,
            counterfactual=counterfactual,
            **families,
        )
        self._log_results(metrics)
        return metrics

    # ------------------------------------------------------------------
    # Input views
    # ------------------------------------------------------------------

    @staticmethod
    def _collect_labels(subjects: Sequence[Subject], warnings: List[str]) -> Optional[np.ndarray]:
        present = [s.label for s in subjects if s.label is not None]
        if not present:
            return None
        if len(present) != len(subjects):
            warnings.append(
                f"ground-truth labels present on {len(present)} of {len(subjects)} "
                f"subjects; using selection proxy"
            )
            return None
        return np.asarray([bool(s.label) for s in subjects])

    @staticmethod
    def _collect_covariates(
        subjects: Sequence[Subject],
        context: FairnessContext,
        warnings: List[str],
    ) -> Dict[str, np.ndarray]:
        if context.treatment_covariates is not None:
            names = sorted(set(context.treatment_covariates))
        else:
            names = sorted({k for s in subjects for k in s.covariates})

        covariates = {}
        for name in names:
            values = [s.covariates.get(name) for s in subjects]
            try:
                array = np.asarray(values, dtype=float)
            except (TypeError, ValueError):
                warnings.append(f"covariate '{name}' is not numeric on every subject; skipped")
                continue
            if not np.all(np.isfinite(array)):
                warnings.append(f"covariate '{name}' missing on some subjects; skipped")
                continue
            covariates[name] = array
        return covariates


    # ------------------------------------------------------------------
    # Informational metrics
    # ------------------------------------------------------------------

    @staticmethod
    def _calibration(
        subjects: Sequence[Subject],
        attribute_groups: Dict[str, np.ndarray],
        outcomes: np.ndarray,
        labels: Optional[np.ndarray],
        warnings: List[str],
    ) -> Optional[CalibrationSummary]:
        """Calibration of subject scores; needs a score in [0, 1] on every subject."""
        present = [s.score for s in subjects if s.score is not None]
        if not present:
            return None
        if len(present) != len(subjects):
            warnings.append(f"scores present on {len(present)} of {len(subjects)} subjects; calibration skipped")
            return None
        scores = np.asarray(present, dtype=float)
        if not np.all((scores >= 0) & (scores <= 1)):
            warnings.append("scores outside [0, 1]; calibration skipped")
            return None

        if labels is not None:
            return score_calibration(attribute_groups, scores, labels, basis="ground_truth")
        return score_calibration(attribute_groups, scores, outcomes, basis="outcome")

    @staticmethod
    def _individual_fairness(
        subjects: Sequence[Subject],
        attribute_groups: Dict[str, np.ndarray],
        outcomes: np.ndarray,
        warnings: List[str],
    ) -> Tuple[Optional[IndividualFairnessSummary], Optional[CounterfactualSummary]]:
        """Consistency and counterfactual matching over features shared by every subject."""
        names = sorted(set.intersection(*(set(s.features) for s in subjects)))
        if not names:
            if any(s.features for s in subjects):
                warnings.append("no qualification feature present on every subject; individual fairness skipped")
            return None, None

        features = np.asarray([[s.features[n] for n in names] for s in subjects], dtype=float)
        if not np.all(np.isfinite(features)):
            warnings.append("non-finite qualification features; individual fairness skipped")
            return None, None

        return (
            consistency_score(features, outcomes, names),
            counterfactual_consistency(attribute_groups, features, outcomes),
        )
    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def _overall_score(self, families: Dict[str, MetricFamilyResult]) -> float:
        """
        Weighted average over scored families, weights renormalised.

        Families that are not evaluable, or that only restate the selection
        rate because labels are missing, are left out.
        """
        scored = {n: f for n, f in families.items() if f.scored}
        total_weight = sum(self.weights[n] for n in scored)
        score = sum(self.weights[n] * f.score for n, f in scored.items()) / total_weight
        # Guard against 1.0000000000000002 from float summation
        return float(min(1.0, max(0.0, score)))

    def _wald_interval(self, score: float, n: int) -> ConfidenceInterval:
        """Normal-approximation interval: score ± z·sqrt(s(1−s)/n), clamped to [0, 1]."""
        z = two_sided_z_critical(self.confidence_level)
        half_width = z * math.sqrt(score * (1.0 - score) / n)
        return ConfidenceInterval(
            lower=max(0.0, score - half_width),
            upper=min(1.0, score + half_width),
            level=self.confidence_level,
            method="wald",
        )

    @staticmethod
    def _attribute_significance(
        attribute: str,
        groups: np.ndarray,
        outcomes: np.ndarray,
    ) -> AttributeSignificance:
        """
        Chi-square on the group x outcome table; Fisher's exact test takes
        over for 2x2 tables with an expected count below 5.
        """
        table = ContingencyTable.from_outcomes(groups, outcomes)
        try:
            chi = chi_square_test(table)
        except DegenerateTableError as e:
            return AttributeSignificance(
                attribute=attribute,
                test_used="none",
                status="degenerate",
                notes=[str(e)],
            )

        counts = table.as_array()
        rates = counts[:, 0] / counts.sum(axis=1)
        result = AttributeSignificance(
            attribute=attribute,
            test_used="chi_square",
            status="ok" if chi.is_reliable else "reduced_confidence",
            is_significant=chi.is_significant,
            statistic=chi.statistic,
            degrees_of_freedom=chi.degrees_of_freedom,
            p_value=chi.p_value,
            effect_size=cohens_h(float(rates.max()), float(rates.min())),
            cramers_v=cramers_v(chi.statistic, table.total, table.shape),
            min_expected_count=chi.min_expected_count,
            low_expected_cells=chi.low_expected_cells,
        )

        if not chi.is_reliable:
            result.notes.append(
                f"{chi.low_expected_cells} expected cell count(s) below 5"
            )
            if table.shape == (2, 2):
                fisher = fisher_exact_test(table)
                result.test_used = "fisher_exact"
                result.p_value = fisher.p_value
                result.is_significant = fisher.is_significant
                result.odds_ratio = fisher.odds_ratio
                result.odds_ratio_ci = fisher.confidence_interval
                result.ratio_status = fisher.ratio_status
                result.status = "ok" if fisher.ratio_status == "defined" else "reduced_confidence"

        return result

    def _sample_size_info(
        self,
        attribute_groups: Dict[str, np.ndarray],
        significance: Dict[str, AttributeSignificance],
    ) -> SampleSizeInfo:
        by_group = {
            attribute: {
                str(g): int(n)
                for g, n in pd.Series(groups).value_counts().sort_index().items()
            }
            for attribute, groups in attribute_groups.items()
        }
        smallest = min(n for sizes in by_group.values() for n in sizes.values())
        total = len(next(iter(attribute_groups.values())))
        return SampleSizeInfo(
            total=total,
            by_group=by_group,
            minimum_required=self.min_sample_size,
            adequacy_score=min(1.0, smallest / self.min_group_size),
            smallest_group=smallest,
            low_expected_cells={a: s.low_expected_cells for a, s in significance.items()},
        )

    def _validation_status(
        self,
        families: Dict[str, MetricFamilyResult],
        sample_size: SampleSizeInfo,
        significance: Dict[str, AttributeSignificance],
        warnings: List[str],
    ) -> ValidationStatus:
        warnings = list(warnings)

        for name, family in families.items():
            if not family.evaluable:
                warnings.append(f"{name} not evaluable: {'; '.join(family.notes)}")
            else:
                warnings.extend(f"{name}: {note}" for note in family.notes)

        for attribute, sizes in sample_size.by_group.items():
            small = sorted(g for g, n in sizes.items() if n < self.min_group_size)
            if small:
                warnings.append(
                    f"{attribute}: groups below {self.min_group_size} subjects: {small}"
                )

        for attribute, sig in significance.items():
            if sig.status != "ok":
                warnings.append(f"{attribute}: significance {sig.status} ({'; '.join(sig.notes)})")

        evaluable = sum(1 for f in families.values() if f.evaluable)
        if sample_size.adequacy_score < 0.5 or evaluable < 3:
            confidence = "low"
        elif warnings:
            confidence = "reduced"
        else:
            confidence = "high"

        return ValidationStatus(is_valid=True, confidence=confidence, warnings=warnings)

    @staticmethod
    def _log_results(metrics: FairnessMetrics) -> None:
        for name, family in metrics.families().items():
            if not family.scored:
                continue
            if name in RATIO_FAMILIES:
                value, threshold = family.score, FOUR_FIFTHS_THRESHOLD
                is_fair = value >= threshold
            else:
                value, threshold = family.worst_difference, FAMILY_DIFFERENCE_THRESHOLDS[name]
                is_fair = value <= threshold
            log_family_result(logger, FAIRNESS_METRICS[name]["name"], value, threshold, is_fair)

            for violation in family.violations:
                log_violation(
                    logger, f"{name}:{violation.attribute}", violation.severity, violation.affected_groups
                )

        logger.info(
            f"Overall fairness score {metrics.overall_score:.4f} "
            f"[{metrics.confidence_interval.lower:.4f}, {metrics.confidence_interval.upper:.4f}] "
            f"(confidence={metrics.validation.confidence})"
        )


def calculate_fairness_metrics(
    subjects: Sequence[Subject],
    outcomes: Sequence[bool],
    protected_attributes: Sequence[str],
    context: Optional[FairnessContext] = None,
) -> FairnessMetrics:
    """Convenience wrapper around a default FairnessMetricsCalculator."""
    return FairnessMetricsCalculator().calculate_fairness_metrics(
        subjects, outcomes, protected_attributes, context
    )


def subjects_from_dataframe(
    df: pd.DataFrame,
    protected_attributes: Sequence[str],
    outcome_column: str,
    id_column: Optional[str] = None,
    label_column: Optional[str] = None,
    covariate_columns: Optional[Sequence[str]] = None,
    score_column: Optional[str] = None,
    feature_columns: Optional[Sequence[str]] = None,
) -> Tuple[List[Subject], List[bool]]:
    """
    Build subjects and outcomes from a DataFrame.

    Args:
        df: One row per subject
        protected_attributes: Columns holding protected attributes
        outcome_column: Boolean (or 0/1) outcome column
        id_column: Optional id column (row index used otherwise)
        label_column: Optional ground-truth column
        covariate_columns: Optional numeric covariate columns
        score_column: Optional model score column in [0, 1]
        feature_columns: Optional numeric qualification feature columns

    Returns:
        (subjects, outcomes)
    """
    missing = [c for c in [*protected_attributes, outcome_column] if c not in df.columns]
    if missing:
        raise KeyError(f"Missing required columns: {missing}")

    subjects = []
    for index, row in df.iterrows():
        subjects.append(Subject(
            subject_id=str(row[id_column]) if id_column else str(index),
            protected_attributes={
                a: (None if pd.isna(row[a]) else str(row[a])) for a in protected_attributes
            },
            outcome=bool(row[outcome_column]),
            covariates={c: float(row[c]) for c in (covariate_columns or [])},
            label=bool(row[label_column]) if label_column else None,
            score=float(row[score_column]) if score_column else None,
            features={c: float(row[c]) for c in (feature_columns or [])},
        ))
    return subjects, [bool(v) for v in df[outcome_column]]
