"""
Calibration - Does a score mean the same thing for every group?

When subjects carry a model score (e.g. a match score in [0, 1]), the
score is binned into equal-width bins and each bin's mean score is
compared with the observed positive rate. The count-weighted gap is the
group's expected calibration error (ECE). A well calibrated process has
a small ECE in every group and a small spread between groups.

Ground-truth labels are the target when present; otherwise the recorded
outcome is, which measures whether the score predicts the decision
equally well across groups.

The result is informational: it is reported with the fairness metrics
but carries no weight in the overall score.
"""

from typing import Dict, Optional

import numpy as np

from shared.constants import CALIBRATION_BINS, MIN_CALIBRATION_GROUP_SIZE
from shared.logging import get_logger
from shared.schemas import AttributeCalibration, CalibrationSummary
from measurement_module.src.metrics_engine import AttributeGroups, assess_compliance

logger = get_logger(__name__)


def expected_calibration_error(
    scores: np.ndarray,
    targets: np.ndarray,
    bins: int = CALIBRATION_BINS,
) -> float:
    """
    Count-weighted mean |mean score - positive rate| over non-empty bins.

    Args:
        scores: Scores in [0, 1]
        targets: Boolean target per score
        bins: Number of equal-width bins on [0, 1]

    Example:
        >>> expected_calibration_error(np.array([0.25, 0.25]), np.array([False, True]))
        0.25
    """
    scores = np.asarray(scores, dtype=float)
    targets = np.asarray(targets, dtype=float)
    if scores.size == 0:
        return 0.0

    # A score of exactly 1.0 belongs to the last bin
    index = np.minimum((scores * bins).astype(int), bins - 1)
    error = 0.0
    for b in np.unique(index):
        mask = index == b
        error += mask.sum() * abs(scores[mask].mean() - targets[mask].mean())
    return float(error / scores.size)


def score_calibration(
    attribute_groups: AttributeGroups,
    scores: np.ndarray,
    targets: np.ndarray,
    basis: str,
    bins: int = CALIBRATION_BINS,
    min_group_size: int = MIN_CALIBRATION_GROUP_SIZE,
) -> Optional[CalibrationSummary]:
    """
    Per-group calibration error for every protected attribute.

    Groups smaller than min_group_size are left out; an attribute needs
    two remaining groups. The attribute score is 1 - the largest group
    error and the summary score is the lowest attribute score.

    Returns:
        CalibrationSummary, or None when no attribute could be assessed
    """
    attributes: Dict[str, AttributeCalibration] = {}
    for attribute in sorted(attribute_groups):
        groups = attribute_groups[attribute]
        errors = {}
        sizes = {}
        for group in sorted(set(groups.tolist())):
            mask = groups == group
            if mask.sum() < min_group_size:
                continue
            errors[group] = expected_calibration_error(scores[mask], targets[mask], bins)
            sizes[group] = int(mask.sum())

        if len(errors) < 2:
            logger.debug(f"{attribute}: fewer than two groups large enough for calibration")
            continue

        max_error = max(errors.values())
        score = 1.0 - max_error
        attributes[attribute] = AttributeCalibration(
            attribute=attribute,
            group_errors=errors,
            group_sizes=sizes,
            max_error=max_error,
            error_difference=max_error - min(errors.values()),
            score=score,
            compliance_status=assess_compliance(score),
        )

    if not attributes:
        return None

    overall = min(a.score for a in attributes.values())
    return CalibrationSummary(
        basis=basis,
        attributes=attributes,
        score=overall,
        compliance_status=assess_compliance(overall),
        bins=bins,
    )
